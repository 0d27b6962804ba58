"""Control commands, replay status and agent filters."""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from hive_kernel.models.events import AgentStatus
from hive_kernel.models.field import Agent


class ReplayMode(str, Enum):
    LIVE = "live"
    REPLAY = "replay"


class ReplayState(str, Enum):
    PAUSED = "paused"
    PLAYING = "playing"
    SEEKING = "seeking"


class ReplayStatus(BaseModel):
    """What the presentation layer needs to draw a timeline."""

    mode: ReplayMode = ReplayMode.LIVE
    state: Optional[ReplayState] = None     # Only set in replay mode
    position: Optional[float] = None        # Current replay time
    start: Optional[float] = None
    end: Optional[float] = None
    duration: float = 0.0
    speed: float = 1.0
    fraction: float = 0.0
    record_count: int = 0


class AgentFilter(BaseModel):
    """A predicate over agent fields. Unset criteria match everything."""

    id_contains: Optional[str] = None
    statuses: Optional[List[AgentStatus]] = None
    focus_keyword: Optional[str] = None
    min_intensity: Optional[float] = Field(default=None, ge=0, le=1)
    include_stale: bool = True

    def matches(self, agent: Agent) -> bool:
        if self.id_contains and self.id_contains.lower() not in agent.id.lower():
            return False
        if self.statuses is not None and agent.status not in self.statuses:
            return False
        if self.focus_keyword:
            needle = self.focus_keyword.lower()
            if not any(needle in k.lower() for k in agent.focus):
                return False
        if self.min_intensity is not None and agent.intensity < self.min_intensity:
            return False
        if not self.include_stale and agent.stale:
            return False
        return True


# --- Commands ---

class PauseToggle(BaseModel):
    command: Literal["pause_toggle"] = "pause_toggle"


class SetSpeed(BaseModel):
    command: Literal["set_speed"] = "set_speed"
    multiplier: float = Field(gt=0)


class AdjustSpeed(BaseModel):
    command: Literal["adjust_speed"] = "adjust_speed"
    delta: float


class EnterReplay(BaseModel):
    command: Literal["enter_replay"] = "enter_replay"


class ExitReplay(BaseModel):
    command: Literal["exit_replay"] = "exit_replay"


class Seek(BaseModel):
    """Seek by absolute log time, relative offset in seconds, or fraction of the log."""

    command: Literal["seek"] = "seek"
    timestamp: Optional[float] = None
    offset: Optional[float] = None
    fraction: Optional[float] = None

    @model_validator(mode="after")
    def _exactly_one_target(self) -> "Seek":
        given = [v for v in (self.timestamp, self.offset, self.fraction) if v is not None]
        if len(given) != 1:
            raise ValueError("seek needs exactly one of timestamp, offset or fraction")
        return self


class SeekStep(BaseModel):
    """Discrete seek by ReplayConfig.seek_step_fraction of the log."""

    command: Literal["seek_step"] = "seek_step"
    direction: Literal["forward", "backward"] = "forward"


class ClearHeatmap(BaseModel):
    command: Literal["clear_heatmap"] = "clear_heatmap"


class ApplyFilter(BaseModel):
    command: Literal["apply_filter"] = "apply_filter"
    filter: Optional[AgentFilter] = None


class ResetState(BaseModel):
    command: Literal["reset_state"] = "reset_state"


ControlCommand = Annotated[
    Union[
        PauseToggle,
        SetSpeed,
        AdjustSpeed,
        EnterReplay,
        ExitReplay,
        Seek,
        SeekStep,
        ClearHeatmap,
        ApplyFilter,
        ResetState,
    ],
    Field(discriminator="command"),
]
