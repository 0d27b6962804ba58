"""
Hive Pipeline — the single consumer that advances the model one tick at a time.

Each step():
  1. apply pending control commands
  2. drain the event queue into the live engine and the history log
  3. live housekeeping, position phase and trail recording
  4. in replay mode, advance playback and position the replay engine
  5. step the heatmap from the published engine's agents
  6. publish a read-only HiveView

Producers (the record source tailer, the demo session, the HTTP ingest
endpoint) only ever touch the normalizer and the bounded queue, so a step
never waits on I/O.
"""

import asyncio
import json
import logging
import threading
import time
from collections import Counter, deque
from typing import Any, Callable, Deque, Iterable, List, Optional, Tuple

from hive_kernel.heatmap.accumulator import Heatmap
from hive_kernel.history.log import EventLogStore
from hive_kernel.history.replay import History
from hive_kernel.ingest.demo import DemoGenerator, DemoProducer
from hive_kernel.ingest.normalizer import Normalizer
from hive_kernel.ingest.queue import EventQueue
from hive_kernel.ingest.tailer import RecordTailer, SourceProducer
from hive_kernel.models.config import HiveConfig
from hive_kernel.models.control import (
    AdjustSpeed,
    AgentFilter,
    ApplyFilter,
    ClearHeatmap,
    EnterReplay,
    ExitReplay,
    PauseToggle,
    ReplayState,
    ResetState,
    Seek,
    SeekStep,
    SetSpeed,
)
from hive_kernel.models.events import AgentUpdate, event_to_record
from hive_kernel.models.history import AnyEvent
from hive_kernel.models.view import ActivityEntry, Diagnostics, HiveView
from hive_kernel.positioning.semantic import SemanticPositioner
from hive_kernel.state.engine import StateEngine

logger = logging.getLogger("hive_kernel.pipeline.loop")


def _event_key(event: AnyEvent) -> str:
    return json.dumps(event_to_record(event), sort_keys=True)


class HivePipeline:
    """Owns every component of one session. There is no process-wide instance."""

    def __init__(
        self,
        config: Optional[HiveConfig] = None,
        clock: Callable[[], float] = time.time,
        store: Optional[EventLogStore] = None,
    ):
        self.config = config or HiveConfig()
        self.clock = clock

        self.normalizer = Normalizer()
        self.queue = EventQueue(self.config.queue)
        self.positioner = SemanticPositioner(self.config.positioner, self.config.collision)
        self.engine = self._new_engine()
        self.heatmap = Heatmap(self.config.heatmap)
        self.history = History(
            engine_factory=self._new_engine,
            positioner=self.positioner,
            config=self.config.replay,
            store=store or EventLogStore(self.config.log_db_path),
        )

        self.paused = False
        self.filter: Optional[AgentFilter] = None
        self.tick_count = 0
        self.collision_passes = 0
        self.activity: Deque[ActivityEntry] = deque(maxlen=self.config.activity_capacity)
        self._last_step: Optional[float] = None
        self._commands: Deque[Any] = deque()
        self._commands_lock = threading.Lock()
        self._step_lock = threading.Lock()
        self._running = False

        self.producer: Optional[SourceProducer] = None
        if self.config.source_path:
            self.producer = SourceProducer(
                RecordTailer(self.config.source_path),
                self.normalizer,
                self.queue,
                poll_interval=self.config.source_poll_interval,
            )

        self.demo: Optional[DemoProducer] = None
        if self.config.demo:
            self.demo = DemoProducer(
                DemoGenerator(seed=self.config.demo_seed, start=self.clock()),
                self.normalizer,
                self.queue,
                clock=self.clock,
                poll_interval=self.config.source_poll_interval,
            )

        # A persistent log from an earlier run seeds the live engine
        if self.history.record_count:
            self.engine.apply_all(record.event for record in self.history.store.all())

        self._view = self._build_view()

    def _new_engine(self) -> StateEngine:
        return StateEngine(
            config=self.config.state,
            landmark_resolver=self.positioner.derive_landmark_center,
            landmark_radius=self.config.positioner.landmark_radius,
        )

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    @property
    def published_engine(self) -> StateEngine:
        """The engine whose state is being shown: replay while replaying, else live."""
        if self.history.in_replay and self.history.replay_engine is not None:
            return self.history.replay_engine
        return self.engine

    # --- Producers ---

    def ingest(self, raw: Any) -> Optional[AnyEvent]:
        """Normalize one raw record and queue it. Returns the event, or None if dropped."""
        event = self.normalizer.normalize(raw)
        if event is not None:
            self.queue.put(event)
        return event

    def ingest_many(self, raws: Iterable[Any]) -> Tuple[int, int]:
        """Returns (accepted, rejected)."""
        accepted = rejected = 0
        for raw in raws:
            if self.ingest(raw) is not None:
                accepted += 1
            else:
                rejected += 1
        return accepted, rejected

    def submit(self, command: Any) -> None:
        """Queue a control command for the next step. Safe from any thread."""
        with self._commands_lock:
            self._commands.append(command)

    def load_source(self) -> int:
        """
        Read everything already in the record source into history and the
        live engine. Events that a persistent log already holds are skipped,
        so restarting on the same log and source does not record them again.
        Returns the number of events loaded.
        """
        if self.producer is None:
            return 0
        events = self.normalizer.normalize_many(self.producer.tailer.poll())
        with self._step_lock:
            fresh = self._unlogged(events)
            self.history.load(fresh)
            for event in fresh:
                self._apply_live(event)
        logger.info(
            "Loaded %d events from %s (%d already logged)",
            len(fresh), self.config.source_path, len(events) - len(fresh),
        )
        return len(fresh)

    def _unlogged(self, events: List[AnyEvent]) -> List[AnyEvent]:
        """Events not yet in the log, matched by their wire form one for one."""
        if not self.history.record_count:
            return events
        logged = Counter(_event_key(r.event) for r in self.history.store.all())
        fresh = []
        for event in events:
            key = _event_key(event)
            if logged[key]:
                logged[key] -= 1
            else:
                fresh.append(event)
        return fresh

    # --- Tick ---

    def step(self, now: Optional[float] = None) -> HiveView:
        """Advance one tick and publish a new view."""
        with self._step_lock:
            if now is None:
                now = self.clock()
            wall_dt = 0.0 if self._last_step is None else max(0.0, now - self._last_step)
            self._last_step = now

            self._apply_commands()
            self._drain_events()

            self.engine.tick(now)
            live_dt = 0.0 if self.paused else wall_dt
            self.collision_passes = self.positioner.step(self.engine.state, live_dt)
            if not self.paused:
                self.engine.record_trails(now)

            heat_dt = live_dt
            if self.history.in_replay:
                playing = self.history.state == ReplayState.PLAYING
                self.history.advance(wall_dt)
                replay = self.history.replay_engine
                # Motion and heat run on replay time
                heat_dt = wall_dt * self.history.speed if playing else 0.0
                if replay is not None:
                    self.collision_passes = self.positioner.step(replay.state, heat_dt)
                    if playing:
                        replay.record_trails(self.history.replay_time)

            self.heatmap.step(self.published_engine.agents.values(), heat_dt)

            self.tick_count += 1
            self._view = self._build_view(now)
            return self._view

    def _drain_events(self) -> int:
        events = self.queue.drain(self.config.max_events_per_tick)
        for event in events:
            self._apply_live(event)
            self.history.record(event)
        return len(events)

    def _apply_live(self, event: AnyEvent) -> None:
        self.engine.apply(event)
        if isinstance(event, AgentUpdate):
            agent = self.engine.get_agent(event.agent_id)
            self.activity.append(ActivityEntry(
                agent_id=event.agent_id,
                message=event.message or agent.status.value,
                timestamp=event.timestamp,
                color_index=agent.color_index,
            ))

    def _apply_commands(self) -> None:
        with self._commands_lock:
            commands = list(self._commands)
            self._commands.clear()
        for command in commands:
            self.handle_command(command)

    def handle_command(self, command: Any) -> None:
        """Apply one control command immediately. Call from the stepping thread only."""
        if isinstance(command, PauseToggle):
            if self.history.in_replay:
                self.history.toggle_pause()
            else:
                self.paused = not self.paused
        elif isinstance(command, SetSpeed):
            self.history.set_speed(command.multiplier)
        elif isinstance(command, AdjustSpeed):
            self.history.adjust_speed(command.delta)
        elif isinstance(command, EnterReplay):
            if self.history.enter_replay():
                self.heatmap.clear()
        elif isinstance(command, ExitReplay):
            if self.history.in_replay:
                self.history.exit_replay()
                self.heatmap.clear()
        elif isinstance(command, Seek):
            if command.timestamp is not None:
                moved = self.history.seek(command.timestamp)
            elif command.offset is not None:
                moved = self.history.seek_offset(command.offset)
            else:
                moved = self.history.seek_fraction(command.fraction)
            if moved:
                self.heatmap.clear()
        elif isinstance(command, SeekStep):
            if command.direction == "forward":
                moved = self.history.step_forward()
            else:
                moved = self.history.step_backward()
            if moved:
                self.heatmap.clear()
        elif isinstance(command, ClearHeatmap):
            self.heatmap.clear()
        elif isinstance(command, ApplyFilter):
            self.filter = command.filter
        elif isinstance(command, ResetState):
            self.reset()
        else:
            raise TypeError(f"Unsupported command: {type(command).__name__}")

    def reset(self) -> None:
        """Fresh session: clear the engines, history, heatmap and pending events."""
        discarded = self.queue.clear()
        self.engine.reset()
        self.history.reset()
        self.heatmap.clear()
        self.activity.clear()
        self.positioner.clear_cache()
        self.normalizer.reset_stats()
        self.paused = False
        logger.info("Pipeline reset (%d queued events discarded)", discarded)

    # --- Views ---

    def view(self) -> HiveView:
        """The most recently published view."""
        return self._view

    def diagnostics(self) -> Diagnostics:
        return Diagnostics(
            ingest=self.normalizer.stats,
            queue_depth=len(self.queue),
            queue_dropped=self.queue.dropped,
            implicit_agents=self.engine.implicit_agents_created,
            events_applied=self.engine.events_applied,
            log_records=self.history.record_count,
            ticks=self.tick_count,
            collision_passes=self.collision_passes,
        )

    def _build_view(self, now: Optional[float] = None) -> HiveView:
        engine = self.published_engine
        state = engine.state

        agents = {}
        for agent in engine.agents_sorted():
            if self.filter is None or self.filter.matches(agent):
                agents[agent.id] = agent.model_copy(deep=True)

        connections = [
            conn.model_copy()
            for _, conn in sorted(state.connections.items())
            if conn.source in agents and conn.target in agents
        ]

        return HiveView(
            tick=self.tick_count,
            now=now,
            agents=agents,
            connections=connections,
            landmarks={k: v.model_copy(deep=True) for k, v in sorted(state.landmarks.items())},
            clusters=[c.model_copy(deep=True) for c in self.positioner.clusters(state)],
            heatmap=self.heatmap.grid(),
            replay=self.history.status(),
            paused=self.paused,
            filter=self.filter.model_copy(deep=True) if self.filter else None,
            activity=[entry.model_copy() for entry in self.activity],
            diagnostics=self.diagnostics(),
        )

    # --- Driving ---

    def start_source(self) -> None:
        if self.producer is not None and not self.producer.running:
            self.load_source()
            self.producer.start()
        if self.demo is not None:
            self.demo.start()

    def stop_source(self) -> None:
        if self.producer is not None:
            self.producer.stop(timeout=1.0)
        if self.demo is not None:
            self.demo.stop(timeout=1.0)

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Step every tick_interval until stop_event is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        self.start_source()
        try:
            while not stop_event.is_set():
                self.step()
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.config.tick_interval,
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self.stop_source()
            self._running = False

    def close(self) -> None:
        self.stop_source()
        self.queue.close()
        self.history.store.close()
