"""Hive Events — the normalized records that drive the State Engine."""

from enum import Enum
from typing import Annotated, Literal, Optional, Tuple, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


class AgentStatus(str, Enum):
    ACTIVE = "active"
    THINKING = "thinking"
    WAITING = "waiting"
    IDLE = "idle"
    ERROR = "error"


def _require_identifier(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("identifier must not be empty")
    return value


def _strip_keywords(value: Optional[Tuple[str, ...]]) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    return tuple(k.strip() for k in value if k.strip())


Identifier = Annotated[str, AfterValidator(_require_identifier)]
Keywords = Annotated[Tuple[str, ...], AfterValidator(_strip_keywords)]


class AgentUpdate(BaseModel):
    """
    Partial update for one agent.

    Every field except agent_id and timestamp is optional: None means
    "keep the prior value" when the update is applied.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["agent_update"] = "agent_update"
    agent_id: Identifier
    status: Optional[AgentStatus] = None
    focus: Optional[Keywords] = None
    intensity: Optional[float] = Field(default=None, ge=0, le=1, allow_inf_nan=False)
    message: Optional[str] = None
    timestamp: float = Field(ge=0, allow_inf_nan=False)


class ConnectionEvent(BaseModel):
    """An interaction between two agents. Wire names are `from` / `to`."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["connection"] = "connection"
    source: Identifier = Field(alias="from")
    target: Identifier = Field(alias="to")
    label: str = ""
    timestamp: float = Field(ge=0, allow_inf_nan=False)

    @property
    def pair_key(self) -> Tuple[str, str]:
        """Undirected key: a->b and b->a are the same pair."""
        if self.source <= self.target:
            return (self.source, self.target)
        return (self.target, self.source)


class LandmarkEvent(BaseModel):
    """Definition (or full redefinition) of a named concept cluster."""

    model_config = ConfigDict(frozen=True)

    type: Literal["landmark"] = "landmark"
    id: Identifier
    label: str = ""
    keywords: Keywords = ()
    center: Optional[Tuple[float, float]] = None
    radius: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    timestamp: float = Field(ge=0, allow_inf_nan=False)


HiveEvent = Annotated[
    Union[AgentUpdate, ConnectionEvent, LandmarkEvent],
    Field(discriminator="type"),
]

EVENT_TYPES = ("agent_update", "connection", "landmark")


def event_to_record(event: Union[AgentUpdate, ConnectionEvent, LandmarkEvent]) -> dict:
    """Serialize an event back to its wire form (used by the event log)."""
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)
