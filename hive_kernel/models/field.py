"""Field State — agents, connections and concept clusters on the unit square."""

import json
import math
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from hive_kernel.models.events import AgentStatus

# Positions live in [EDGE_MARGIN, 1 - EDGE_MARGIN] on both axes.
EDGE_MARGIN = 0.05
BOUND_MIN = EDGE_MARGIN
BOUND_MAX = 1.0 - EDGE_MARGIN


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_to_bounds(value: float) -> float:
    return clamp(value, BOUND_MIN, BOUND_MAX)


class Position(BaseModel):
    """A point in normalized field coordinates."""

    x: float = 0.5
    y: float = 0.5

    @classmethod
    def center(cls) -> "Position":
        return cls(x=0.5, y=0.5)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def distance_to(self, other: "Position") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def lerp(self, target: "Position", t: float) -> "Position":
        """Move fraction t of the way toward target (t is not clamped, so overshoot is possible)."""
        return Position(
            x=self.x + (target.x - self.x) * t,
            y=self.y + (target.y - self.y) * t,
        )

    def clamped(self) -> "Position":
        return Position(x=clamp_to_bounds(self.x), y=clamp_to_bounds(self.y))


class TrailPoint(BaseModel):
    position: Position
    timestamp: float
    intensity: float = 0.0


class Agent(BaseModel):
    """A monitored unit of work."""

    id: str
    status: AgentStatus = AgentStatus.IDLE
    focus: List[str] = []
    intensity: float = Field(default=0.0, ge=0, le=1)
    message: str = ""
    position: Position = Field(default_factory=Position.center)
    target_position: Position = Field(default_factory=Position.center)
    trail: List[TrailPoint] = []
    created_at: float = 0.0
    last_updated: float = 0.0
    stale: bool = False
    implicit: bool = False              # Created by a connection, not by its own update
    color_index: int = 0                # Creation order, stable per session


class Connection(BaseModel):
    """An active, time-limited link between two agents."""

    source: str
    target: str
    label: str = ""
    created_at: float
    ttl_seconds: float = Field(gt=0)

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl_seconds

    @property
    def pair_key(self) -> Tuple[str, str]:
        if self.source <= self.target:
            return (self.source, self.target)
        return (self.target, self.source)


class ConceptCluster(BaseModel):
    """A labeled semantic region with a gravitational center."""

    id: str
    label: str = ""
    keywords: List[str] = []
    center: Position
    radius: float = Field(default=0.12, gt=0)
    builtin: bool = False
    defined_at: Optional[float] = None

    def contains(self, position: Position) -> bool:
        return self.center.distance_to(position) <= self.radius


class FieldState(BaseModel):
    """The canonical maps owned by the State Engine."""

    agents: Dict[str, Agent] = {}
    connections: Dict[str, Connection] = {}     # keyed by connection_key(pair_key)
    landmarks: Dict[str, ConceptCluster] = {}
    landmark_revision: int = 0
    agents_created: int = 0
    implicit_agents_created: int = 0


def connection_key(pair: Tuple[str, str]) -> str:
    """JSON-encoded pair, so ids containing any separator cannot collide."""
    return json.dumps([pair[0], pair[1]])
