"""Hive Kernel data models."""

from hive_kernel.models.config import (
    CollisionConfig,
    EasingFunction,
    HeatmapConfig,
    HiveConfig,
    OverflowPolicy,
    PositionerConfig,
    QueueConfig,
    ReplayConfig,
    StateConfig,
)
from hive_kernel.models.control import (
    AdjustSpeed,
    AgentFilter,
    ApplyFilter,
    ClearHeatmap,
    ControlCommand,
    EnterReplay,
    ExitReplay,
    PauseToggle,
    ReplayMode,
    ReplayState,
    ReplayStatus,
    ResetState,
    Seek,
    SetSpeed,
)
from hive_kernel.models.events import (
    AgentStatus,
    AgentUpdate,
    ConnectionEvent,
    HiveEvent,
    LandmarkEvent,
)
from hive_kernel.models.field import (
    Agent,
    ConceptCluster,
    Connection,
    FieldState,
    Position,
    TrailPoint,
)
from hive_kernel.models.history import AnyEvent, LogRecord
from hive_kernel.models.view import Diagnostics, HiveView, IngestStats

__all__ = [
    "AdjustSpeed",
    "Agent",
    "AgentFilter",
    "AgentStatus",
    "AgentUpdate",
    "AnyEvent",
    "ApplyFilter",
    "ClearHeatmap",
    "CollisionConfig",
    "ConceptCluster",
    "Connection",
    "ConnectionEvent",
    "ControlCommand",
    "Diagnostics",
    "EasingFunction",
    "EnterReplay",
    "ExitReplay",
    "FieldState",
    "HeatmapConfig",
    "HiveConfig",
    "HiveEvent",
    "HiveView",
    "IngestStats",
    "LandmarkEvent",
    "LogRecord",
    "OverflowPolicy",
    "PauseToggle",
    "Position",
    "PositionerConfig",
    "QueueConfig",
    "ReplayConfig",
    "ReplayMode",
    "ReplayState",
    "ReplayStatus",
    "ResetState",
    "Seek",
    "SetSpeed",
    "StateConfig",
    "TrailPoint",
]
