"""Configuration for the Hive pipeline and its components."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class EasingFunction(str, Enum):
    LINEAR = "linear"
    EASE_OUT_CUBIC = "ease_out_cubic"
    EASE_IN_OUT_CUBIC = "ease_in_out_cubic"
    EASE_OUT_ELASTIC = "ease_out_elastic"


class OverflowPolicy(str, Enum):
    DROP_OLDEST = "drop_oldest"     # Evict the oldest queued event
    BLOCK = "block"                 # Wait up to block_timeout, then drop oldest


class StateConfig(BaseModel):
    """Configuration for the State Engine."""

    connection_ttl_seconds: float = Field(default=5.0, gt=0)
    stale_after_seconds: float = Field(default=30.0, gt=0)
    max_focus: int = Field(default=8, ge=1)
    max_trail: int = Field(default=50, ge=1)
    trail_min_step: float = Field(default=0.01, ge=0)


class PositionerConfig(BaseModel):
    """Configuration for the Semantic Positioner."""

    builtin_clusters: bool = True
    exact_match_weight: float = 1.0
    partial_match_weight: float = 0.5
    approach_rate: float = Field(default=1.0, gt=0)       # Progress per second
    easing: EasingFunction = EasingFunction.EASE_OUT_CUBIC
    landmark_radius: float = Field(default=0.12, gt=0)


class CollisionConfig(BaseModel):
    """Configuration for collision avoidance."""

    min_distance: float = Field(default=0.08, gt=0)
    cell_size: float = Field(default=0.16, gt=0)
    separation_force: float = Field(default=1.0, gt=0)
    slop: float = Field(default=0.01, ge=0)
    max_passes: int = Field(default=64, ge=1)
    settle_passes: int = Field(default=256, ge=1)

    @property
    def effective_cell_size(self) -> float:
        """Cells must be at least twice the minimum distance for 3x3 lookups."""
        return max(self.cell_size, 2.0 * self.min_distance)


class HeatmapConfig(BaseModel):
    """Configuration for the Heatmap Accumulator."""

    width: int = Field(default=40, ge=1)
    height: int = Field(default=12, ge=1)
    decay_rate: float = 0.98
    threshold: float = 0.02
    accumulation_rate: float = 0.05
    spread: float = 0.3
    max_heat: float = 1.0
    reference_hz: float = Field(default=60.0, gt=0)

    @field_validator("decay_rate")
    @classmethod
    def _clamp_decay(cls, value: float) -> float:
        return min(0.999, max(0.9, value))

    @field_validator("threshold")
    @classmethod
    def _clamp_threshold(cls, value: float) -> float:
        return min(0.1, max(0.001, value))


class ReplayConfig(BaseModel):
    """Configuration for the History / Replay Engine."""

    checkpoint_interval: int = Field(default=500, ge=1)
    min_speed: float = 0.25
    max_speed: float = 4.0
    speed_step: float = 0.25
    seek_step_fraction: float = 0.05
    loop: bool = False


class QueueConfig(BaseModel):
    """Configuration for the ingestion queue."""

    capacity: int = Field(default=1000, ge=1)
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST
    block_timeout: float = Field(default=0.05, ge=0)


class HiveConfig(BaseModel):
    """Top-level configuration for a Hive pipeline."""

    tick_interval: float = Field(default=1.0 / 30.0, gt=0)
    max_events_per_tick: Optional[int] = Field(default=None, ge=1)
    source_path: Optional[str] = None
    source_poll_interval: float = Field(default=0.1, gt=0)
    log_db_path: str = ":memory:"
    activity_capacity: int = Field(default=100, ge=1)

    # Scripted demo session instead of (or alongside) a record source
    demo: bool = False
    demo_seed: Optional[int] = None

    state: StateConfig = StateConfig()
    positioner: PositionerConfig = PositionerConfig()
    collision: CollisionConfig = CollisionConfig()
    heatmap: HeatmapConfig = HeatmapConfig()
    replay: ReplayConfig = ReplayConfig()
    queue: QueueConfig = QueueConfig()
