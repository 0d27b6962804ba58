"""Tests for the History / Replay Engine."""

import pytest

from hive_kernel.history.log import EventLogStore
from hive_kernel.history.replay import History
from hive_kernel.models.config import ReplayConfig
from hive_kernel.models.control import ReplayMode, ReplayState
from hive_kernel.models.events import AgentStatus, AgentUpdate, ConnectionEvent, LandmarkEvent
from hive_kernel.positioning.semantic import SemanticPositioner
from hive_kernel.state.engine import StateEngine


def _make_history(**config) -> History:
    positioner = SemanticPositioner()

    def factory():
        return StateEngine(landmark_resolver=positioner.derive_landmark_center)

    return History(factory, positioner, ReplayConfig(**config))


def _session(n: int = 30, start: float = 1000.0):
    """A mixed event stream, one event per second."""
    events = []
    for i in range(n):
        ts = start + i
        if i % 7 == 3:
            events.append(ConnectionEvent(source=f"a{i % 4}", target=f"a{(i + 1) % 4}", timestamp=ts))
        elif i % 11 == 5:
            events.append(LandmarkEvent(id=f"lm{i}", label="zone", keywords=("api", "sql"), timestamp=ts))
        else:
            events.append(AgentUpdate(
                agent_id=f"a{i % 4}",
                status=list(AgentStatus)[i % 5],
                focus=(["jwt", "react", "docker", "sql"][i % 4],),
                intensity=(i % 10) / 10,
                timestamp=ts,
            ))
    return events


def _fresh_canonical(history: History, events, until: float) -> dict:
    engine = history._new_engine()
    for event in events:
        if event.timestamp <= until:
            engine.apply(event)
    engine.tick(until)
    return engine.canonical()


class TestRecording:
    def test_record_assigns_dense_sequence(self):
        history = _make_history()
        records = [history.record(e) for e in _session(5)]
        assert [r.seq for r in records] == [1, 2, 3, 4, 5]
        assert history.record_count == 5
        assert history.start == 1000.0
        assert history.end == 1004.0
        assert history.duration == 4.0

    def test_out_of_order_events_keep_log_time_monotonic(self):
        history = _make_history()
        history.record(AgentUpdate(agent_id="a", timestamp=10.0))
        record = history.record(AgentUpdate(agent_id="b", timestamp=8.0))
        assert record.timestamp == 10.0

    def test_checkpoints_every_interval(self):
        history = _make_history(checkpoint_interval=10)
        history.load(_session(35))
        # Initial empty checkpoint plus seq 10, 20, 30
        assert history.checkpoint_count == 4

    def test_reload_from_persistent_store(self, tmp_path):
        path = str(tmp_path / "log.db")
        positioner = SemanticPositioner()
        first = History(lambda: StateEngine(), positioner, ReplayConfig(checkpoint_interval=5),
                        store=EventLogStore(path))
        first.load(_session(12))
        first.store.close()

        second = History(lambda: StateEngine(), positioner, ReplayConfig(checkpoint_interval=5),
                         store=EventLogStore(path))
        assert second.record_count == 12
        assert second.checkpoint_count == 3


class TestModes:
    def test_enter_replay_with_empty_log_is_noop(self):
        history = _make_history()
        assert history.enter_replay() is False
        assert history.mode == ReplayMode.LIVE
        assert history.seek(5.0) is False

    def test_enter_replay_starts_paused_at_start(self):
        history = _make_history()
        history.load(_session(10))
        assert history.enter_replay() is True
        status = history.status()
        assert status.mode == ReplayMode.REPLAY
        assert status.state == ReplayState.PAUSED
        assert status.position == 1000.0
        assert status.fraction == 0.0
        assert history.replay_engine is not None
        assert set(history.replay_engine.agents) == {"a0"}

    def test_exit_replay(self):
        history = _make_history()
        history.load(_session(10))
        history.enter_replay()
        history.exit_replay()
        assert history.mode == ReplayMode.LIVE
        assert history.replay_engine is None
        assert history.status().state is None

    def test_seek_ignored_in_live_mode(self):
        history = _make_history()
        history.load(_session(10))
        assert history.seek(1005.0) is False

    def test_speed_is_clamped(self):
        history = _make_history()
        assert history.set_speed(10.0) == 4.0
        assert history.set_speed(0.1) == 0.25
        history.set_speed(1.0)
        assert history.adjust_speed(0.25) == 1.25
        assert history.adjust_speed(-5.0) == 0.25


class TestSeeking:
    def setup_method(self):
        self.history = _make_history(checkpoint_interval=8)
        self.events = _session(40)
        self.history.load(self.events)
        self.history.enter_replay()

    @pytest.mark.parametrize("target", [1000.0, 1003.5, 1007.0, 1016.0, 1023.9, 1039.0])
    def test_seek_matches_fresh_ingest(self, target):
        assert self.history.seek(target)
        expected = _fresh_canonical(self.history, self.events, target)
        assert self.history.replay_engine.canonical() == expected

    def test_seek_clamps_to_range(self):
        self.history.seek(5000.0)
        assert self.history.replay_time == 1039.0
        self.history.seek(0.0)
        assert self.history.replay_time == 1000.0

    def test_seek_backward_rebuilds(self):
        self.history.seek(1030.0)
        self.history.seek(1002.0)
        expected = _fresh_canonical(self.history, self.events, 1002.0)
        assert self.history.replay_engine.canonical() == expected

    def test_seek_offset_and_fraction(self):
        self.history.seek_fraction(0.5)
        assert self.history.replay_time == pytest.approx(1019.5)
        self.history.seek_offset(-9.5)
        assert self.history.replay_time == pytest.approx(1010.0)
        self.history.step_backward()
        assert self.history.replay_time == pytest.approx(1010.0 - 0.05 * 39.0)

    def test_seek_publishes_settled_positions(self):
        self.history.seek(1039.0)
        first = {a.id: a.position for a in self.history.replay_engine.agents.values()}
        self.history.seek(1000.0)
        self.history.seek(1039.0)
        second = {a.id: a.position for a in self.history.replay_engine.agents.values()}
        assert first == second

    def test_seek_preserves_play_state(self):
        self.history.toggle_pause()
        self.history.seek(1010.0)
        assert self.history.state == ReplayState.PLAYING


class TestPlayback:
    def setup_method(self):
        self.history = _make_history()
        self.events = _session(20)
        self.history.load(self.events)
        self.history.enter_replay()

    def test_paused_does_not_advance(self):
        assert self.history.advance(5.0) == 0
        assert self.history.replay_time == 1000.0

    def test_advance_applies_due_records(self):
        self.history.toggle_pause()
        applied = self.history.advance(4.0)
        assert applied == 4
        assert self.history.replay_time == 1004.0
        expected = _fresh_canonical(self.history, self.events, 1004.0)
        assert self.history.replay_engine.canonical() == expected

    def test_speed_scales_playback(self):
        self.history.set_speed(2.0)
        self.history.toggle_pause()
        self.history.advance(2.0)
        assert self.history.replay_time == 1004.0

    def test_pauses_at_end(self):
        self.history.toggle_pause()
        self.history.advance(100.0)
        assert self.history.replay_time == 1019.0
        assert self.history.state == ReplayState.PAUSED
        assert self.history.status().fraction == 1.0

    def test_play_from_end_restarts(self):
        self.history.toggle_pause()
        self.history.advance(100.0)
        self.history.toggle_pause()
        assert self.history.state == ReplayState.PLAYING
        assert self.history.replay_time == 1000.0

    def test_loop_wraps_to_start(self):
        history = _make_history(loop=True)
        history.load(_session(20))
        history.enter_replay()
        history.toggle_pause()
        history.advance(100.0)
        assert history.state == ReplayState.PLAYING
        assert history.replay_time == 1000.0

    def test_reset(self):
        self.history.reset()
        assert self.history.record_count == 0
        assert self.history.mode == ReplayMode.LIVE
        assert self.history.checkpoint_count == 1
        assert self.history.store.count() == 0
