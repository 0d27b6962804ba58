"""Read-only views published to the presentation layer once per tick."""

from typing import Dict, List, Optional

from pydantic import BaseModel

from hive_kernel.models.control import AgentFilter, ReplayStatus
from hive_kernel.models.field import Agent, ConceptCluster, Connection


class IngestStats(BaseModel):
    """Counters kept by the Normalizer."""

    accepted: int = 0
    malformed: int = 0
    ignored: int = 0
    clamped: int = 0


class Diagnostics(BaseModel):
    """Observable counters for degraded-but-running conditions."""

    ingest: IngestStats = IngestStats()
    queue_depth: int = 0
    queue_dropped: int = 0
    implicit_agents: int = 0
    events_applied: int = 0
    log_records: int = 0
    ticks: int = 0
    collision_passes: int = 0           # Used by the last position phase of the published engine


class ActivityEntry(BaseModel):
    """One line of the recent-activity feed."""

    agent_id: str
    message: str
    timestamp: float
    color_index: int = 0


class HiveView(BaseModel):
    """A deep-copied snapshot of everything a renderer may draw."""

    tick: int = 0
    now: Optional[float] = None
    agents: Dict[str, Agent] = {}
    connections: List[Connection] = []
    landmarks: Dict[str, ConceptCluster] = {}
    clusters: List[ConceptCluster] = []
    heatmap: List[List[float]] = []
    replay: ReplayStatus = ReplayStatus()
    paused: bool = False
    filter: Optional[AgentFilter] = None
    activity: List[ActivityEntry] = []     # Oldest first
    diagnostics: Diagnostics = Diagnostics()
