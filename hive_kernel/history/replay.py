"""
History / Replay Engine — records the event stream and rebuilds any moment of it.

Modes:
  live:   the live State Engine is published; every ingested event is recorded
  replay: a separate replay State Engine is published, driven by log time

Replay sub-states:
  paused → playing → (end of log) → paused      (or wraps to start with loop=True)
  any    → seeking → previous state

Behavioral Contract:
- Log time is non-decreasing; seq breaks ties
- Every checkpoint_interval records, a deep copy of an events-only shadow
  engine is kept, so a seek replays at most checkpoint_interval records
- seek(T) builds a complete engine before publishing it; the result's
  canonical state equals a fresh engine fed the same prefix and ticked at T
- With an empty log, entering replay and seeking are no-ops
"""

import bisect
import logging
from typing import Callable, Iterable, List, Optional, Tuple

from hive_kernel.history.log import EventLogStore
from hive_kernel.models.config import ReplayConfig
from hive_kernel.models.control import ReplayMode, ReplayState, ReplayStatus
from hive_kernel.models.field import clamp
from hive_kernel.models.history import AnyEvent, LogRecord
from hive_kernel.positioning.semantic import SemanticPositioner
from hive_kernel.state.engine import StateEngine

logger = logging.getLogger("hive_kernel.history.replay")


class History:
    """Owns the event log, its checkpoints and, in replay mode, the replay engine."""

    def __init__(
        self,
        engine_factory: Callable[[], StateEngine],
        positioner: SemanticPositioner,
        config: Optional[ReplayConfig] = None,
        store: Optional[EventLogStore] = None,
    ):
        self.config = config or ReplayConfig()
        self.store = store or EventLogStore()
        self.positioner = positioner
        self._new_engine = engine_factory

        self.mode = ReplayMode.LIVE
        self.state: Optional[ReplayState] = None
        self.speed = 1.0
        self.replay_time: Optional[float] = None

        self._replay_engine: Optional[StateEngine] = None
        self._cursor = 0                          # Last seq applied to the replay engine
        self._times: List[float] = []             # Log time per seq (index seq - 1)
        self._shadow = self._new_engine()
        self._checkpoints: List[Tuple[int, StateEngine]] = [(0, self._shadow.copy())]

        self._reload()

    def _reload(self) -> None:
        """Rebuild checkpoints from a store that already holds records."""
        existing = self.store.all()
        for record in existing:
            self._track(record)
        if existing:
            logger.info("Reloaded %d recorded events from %s", len(existing), self.store.db_path)

    def _track(self, record: LogRecord) -> None:
        self._times.append(record.timestamp)
        self._shadow.apply(record.event)
        if record.seq % self.config.checkpoint_interval == 0:
            self._checkpoints.append((record.seq, self._shadow.copy()))

    # --- Recording ---

    @property
    def record_count(self) -> int:
        return len(self._times)

    @property
    def start(self) -> Optional[float]:
        return self._times[0] if self._times else None

    @property
    def end(self) -> Optional[float]:
        return self._times[-1] if self._times else None

    @property
    def duration(self) -> float:
        if not self._times:
            return 0.0
        return self._times[-1] - self._times[0]

    @property
    def checkpoint_count(self) -> int:
        return len(self._checkpoints)

    def record(self, event: AnyEvent, timestamp: Optional[float] = None) -> LogRecord:
        """Append one event. Log time is max(timestamp or event time, last log time)."""
        record = self.store.append(event, timestamp)
        self._track(record)
        return record

    def load(self, events: Iterable[AnyEvent]) -> List[LogRecord]:
        """Bulk-record, e.g. the existing contents of a session file."""
        records = self.store.append_many((event, None) for event in events)
        for record in records:
            self._track(record)
        if records:
            logger.info("Loaded %d events into history", len(records))
        return records

    def records(
        self,
        start: Optional[float] = None,
        end: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[LogRecord]:
        return self.store.range(start, end, limit)

    # --- Mode control ---

    @property
    def in_replay(self) -> bool:
        return self.mode == ReplayMode.REPLAY

    @property
    def replay_engine(self) -> Optional[StateEngine]:
        return self._replay_engine

    def enter_replay(self) -> bool:
        """Switch to replay at the start of the log, paused."""
        if self.in_replay:
            return True
        if not self._times:
            logger.info("Replay requested with an empty log; staying live")
            return False
        self.mode = ReplayMode.REPLAY
        self.state = ReplayState.PAUSED
        self._seek_to(self._times[0])
        logger.info("Entered replay mode (%d records)", self.record_count)
        return True

    def exit_replay(self) -> None:
        if not self.in_replay:
            return
        self.mode = ReplayMode.LIVE
        self.state = None
        self.replay_time = None
        self._replay_engine = None
        self._cursor = 0
        logger.info("Returned to live mode")

    def toggle_pause(self) -> None:
        """Flip playing/paused. Playing from the very end restarts at the start."""
        if not self.in_replay:
            return
        if self.state == ReplayState.PLAYING:
            self.state = ReplayState.PAUSED
            return
        if self.replay_time is not None and self.replay_time >= self._times[-1] and self.duration > 0:
            self._seek_to(self._times[0])
        self.state = ReplayState.PLAYING

    def set_speed(self, multiplier: float) -> float:
        self.speed = clamp(multiplier, self.config.min_speed, self.config.max_speed)
        return self.speed

    def adjust_speed(self, delta: float) -> float:
        return self.set_speed(self.speed + delta)

    # --- Seeking ---

    def seek(self, target_time: float) -> bool:
        """Rebuild the replay engine at target_time (clamped to the log range)."""
        if not self.in_replay or not self._times:
            logger.debug("Seek to %s ignored (mode=%s, records=%d)",
                         target_time, self.mode.value, self.record_count)
            return False
        start, end = self._times[0], self._times[-1]
        if target_time < start or target_time > end:
            logger.debug("Seek target %.3f clamped to [%.3f, %.3f]", target_time, start, end)
        self._seek_to(clamp(target_time, start, end))
        return True

    def seek_offset(self, delta_seconds: float) -> bool:
        if self.replay_time is None:
            return self.seek(delta_seconds)
        return self.seek(self.replay_time + delta_seconds)

    def seek_fraction(self, fraction: float) -> bool:
        if not self._times:
            return self.seek(0.0)
        return self.seek(self._times[0] + clamp(fraction, 0.0, 1.0) * self.duration)

    def step_backward(self) -> bool:
        """Discrete seek back by seek_step_fraction of the log."""
        return self.seek_offset(-self.config.seek_step_fraction * self.duration)

    def step_forward(self) -> bool:
        return self.seek_offset(self.config.seek_step_fraction * self.duration)

    def _seek_to(self, target_time: float) -> None:
        resume = self.state
        self.state = ReplayState.SEEKING

        engine, applied_through = self.build_engine_at(target_time)
        self.positioner.settle(engine.state)

        # Publish only once the engine is complete
        self._replay_engine = engine
        self._cursor = applied_through
        self.replay_time = target_time
        self.state = resume if resume != ReplayState.SEEKING else ReplayState.PAUSED

    def build_engine_at(self, target_time: float) -> Tuple[StateEngine, int]:
        """
        A fresh engine holding every record with log time <= target_time,
        ticked at target_time. Returns the engine and the last seq applied.
        """
        through = bisect.bisect_right(self._times, target_time)
        seqs = [seq for seq, _ in self._checkpoints]
        index = bisect.bisect_right(seqs, through) - 1
        checkpoint_seq, checkpoint = self._checkpoints[index]

        engine = checkpoint.copy()
        for record in self.store.span(checkpoint_seq, through):
            engine.apply(record.event)
        engine.tick(target_time)
        return engine, through

    # --- Playback ---

    def advance(self, wall_dt: float) -> int:
        """
        Move replay time forward by wall_dt * speed while playing.
        Returns the number of records applied.
        """
        if not self.in_replay or self.state != ReplayState.PLAYING or self._replay_engine is None:
            return 0

        end = self._times[-1]
        target = (self.replay_time or self._times[0]) + max(0.0, wall_dt) * self.speed
        reached_end = target >= end
        if reached_end:
            target = end

        through = bisect.bisect_right(self._times, target)
        applied = 0
        if through > self._cursor:
            for record in self.store.span(self._cursor, through):
                self._replay_engine.apply(record.event)
                applied += 1
            self._cursor = through
        self._replay_engine.tick(target)
        self.replay_time = target

        if reached_end:
            if self.config.loop and self.duration > 0:
                self._seek_to(self._times[0])
            else:
                self.state = ReplayState.PAUSED
                logger.debug("Replay reached the end of the log; paused")
        return applied

    def status(self) -> ReplayStatus:
        start, end = self.start, self.end
        fraction = 0.0
        if self.in_replay and self.replay_time is not None and self.duration > 0:
            fraction = clamp((self.replay_time - start) / self.duration, 0.0, 1.0)
        return ReplayStatus(
            mode=self.mode,
            state=self.state,
            position=self.replay_time,
            start=start,
            end=end,
            duration=self.duration,
            speed=self.speed,
            fraction=fraction,
            record_count=self.record_count,
        )

    # --- Lifecycle ---

    def reset(self) -> None:
        """Clear the log, checkpoints and replay state."""
        self.store.clear()
        self._times = []
        self._shadow = self._new_engine()
        self._checkpoints = [(0, self._shadow.copy())]
        self.mode = ReplayMode.LIVE
        self.state = None
        self.replay_time = None
        self._replay_engine = None
        self._cursor = 0
        logger.info("History reset")

    def verify(self) -> bool:
        return self.store.verify_chain_integrity()
