"""Tests for the scripted demo session."""

import random
from itertools import islice

from hive_kernel.ingest.demo import (
    DEMO_LANDMARKS,
    FOCUS_AREAS,
    PERSONALITIES,
    ActivityStyle,
    DemoGenerator,
    DemoProducer,
    NarrativePhase,
    SwarmState,
    connection_label,
    contextual_message,
    pick_focus,
    pick_intensity,
    pick_status,
    swarm_connection_label,
)
from hive_kernel.ingest.normalizer import Normalizer
from hive_kernel.ingest.queue import EventQueue
from hive_kernel.models.events import AgentStatus


def _personality(name: str):
    return next(p for p in PERSONALITIES if p.name == name)


def _take(generator: DemoGenerator, n: int):
    return list(islice(generator.records(), n))


class TestPersonalities:
    def test_six_distinct_agents(self):
        assert [p.name for p in PERSONALITIES] == ["Atlas", "Nova", "Echo", "Cipher", "Flux", "Sage"]
        assert len({p.role for p in PERSONALITIES}) == 6

    def test_personalities_are_complete(self):
        for personality in PERSONALITIES:
            assert personality.preferred_areas
            assert personality.messages
            assert 0.0 <= personality.collaboration_tendency <= 1.0
            assert 0.0 <= personality.base_intensity <= 1.0

    def test_prefers_matches_substrings_both_ways(self):
        cipher = _personality("Cipher")
        assert cipher.prefers("authentication")
        assert cipher.prefers("jwt")
        assert not cipher.prefers("redis")


class TestNarrative:
    def test_phase_cycle(self):
        phase = NarrativePhase.EXPLORATION
        seen = []
        for _ in range(4):
            phase = phase.next()
            seen.append(phase)
        assert seen == [
            NarrativePhase.DISCOVERY,
            NarrativePhase.COLLABORATION,
            NarrativePhase.RESOLUTION,
            NarrativePhase.EXPLORATION,
        ]

    def test_duration_ranges(self):
        assert NarrativePhase.EXPLORATION.duration_range == (8.0, 12.0)
        assert NarrativePhase.COLLABORATION.duration_range == (10.0, 15.0)
        for phase in NarrativePhase:
            low, high = phase.duration_range
            assert 0 < low < high


class TestSelection:
    def setup_method(self):
        self.rng = random.Random(42)

    def test_intensity_is_clamped(self):
        for personality in PERSONALITIES:
            for phase in NarrativePhase:
                for _ in range(100):
                    assert 0.1 <= pick_intensity(personality, phase, self.rng) <= 1.0

    def test_fast_agents_never_wait(self):
        nova = _personality("Nova")
        assert nova.activity_style == ActivityStyle.FAST
        statuses = {pick_status(nova, NarrativePhase.DISCOVERY, self.rng) for _ in range(300)}
        assert AgentStatus.WAITING not in statuses
        assert AgentStatus.ACTIVE in statuses

    def test_steady_agents_stay_busy_while_collaborating(self):
        atlas = _personality("Atlas")
        statuses = {pick_status(atlas, NarrativePhase.COLLABORATION, self.rng) for _ in range(300)}
        assert statuses <= {AgentStatus.ACTIVE, AgentStatus.THINKING}

    def test_focus_is_a_known_area(self):
        for personality in PERSONALITIES:
            for _ in range(20):
                assert pick_focus(personality, NarrativePhase.EXPLORATION, self.rng) in FOCUS_AREAS

    def test_contextual_messages(self):
        atlas = _personality("Atlas")
        assert contextual_message(atlas, ("database", "schema"), self.rng) in atlas.messages

        frontend = contextual_message(atlas, ("frontend", "react"), self.rng)
        assert frontend in (
            "Inspecting component tree",
            "Checking render performance",
            "Reviewing state management",
            "Analyzing UI patterns",
        )
        assert contextual_message(atlas, (), self.rng)

    def test_connection_labels_follow_roles(self):
        atlas, nova, echo = _personality("Atlas"), _personality("Nova"), _personality("Echo")
        assert connection_label(atlas, nova, self.rng) in (
            "API contract review", "data format sync", "endpoint validation",
        )
        assert connection_label(echo, nova, self.rng) in (
            "found test case", "coverage report", "regression check",
        )
        assert connection_label(nova, echo, self.rng) in (
            "needs testing", "review test plan", "edge case found",
        )
        assert connection_label(atlas, atlas, self.rng) in (
            "sharing findings", "coordinating work", "syncing progress", "knowledge transfer",
        )

    def test_swarm_labels(self):
        assert swarm_connection_label("database", self.rng) in (
            "data integrity issue", "query bottleneck", "schema conflict",
        )
        assert swarm_connection_label("cache", self.rng) in (
            "critical issue found", "needs collaboration", "converging on problem",
        )


class TestSwarmState:
    def test_start_resets_progress(self):
        swarm = SwarmState()
        assert not swarm.building_up
        swarm.converged = [1, 2]
        swarm.resolution_progress = 0.5
        swarm.start(3)
        assert swarm.active
        assert swarm.building_up
        assert swarm.target_area == 3
        assert swarm.converged == []
        assert swarm.resolution_progress == 0.0


class TestDemoGenerator:
    def test_same_seed_same_session(self):
        assert _take(DemoGenerator(seed=11, start=100.0), 300) == _take(DemoGenerator(seed=11, start=100.0), 300)
        assert _take(DemoGenerator(seed=11), 300) != _take(DemoGenerator(seed=12), 300)

    def test_opens_with_landmarks_then_start_up(self):
        records = _take(DemoGenerator(seed=1, start=100.0), 12)
        assert [r["id"] for r in records[:6]] == [lm[0] for lm in DEMO_LANDMARKS]
        assert all(r["timestamp"] == 100.0 for r in records[:6])

        start_up = records[6:]
        assert [r["agent_id"] for r in start_up] == [p.name for p in PERSONALITIES]
        assert all(r["status"] == "idle" and r["intensity"] == 0.1 for r in start_up)
        assert start_up[0]["message"] == "Backend Specialist starting up..."

    def test_timestamps_never_go_backwards(self):
        records = _take(DemoGenerator(seed=3, start=50.0), 500)
        stamps = [r["timestamp"] for r in records]
        assert stamps == sorted(stamps)
        assert stamps[-1] > 50.0

    def test_records_normalize_cleanly(self):
        normalizer = Normalizer()
        events = normalizer.normalize_many(_take(DemoGenerator(seed=5), 1000))
        assert len(events) == 1000
        assert normalizer.stats.malformed == 0
        assert normalizer.stats.clamped == 0
        assert {e.type for e in events} == {"landmark", "agent_update", "connection"}

    def test_swarm_converges_then_disperses(self):
        records = _take(DemoGenerator(seed=9, swarm_after=0), 4000)
        messages = [r.get("message") for r in records]
        assert "Critical issue identified!" in messages
        peak = messages.index("Critical issue identified!")
        assert any(m and m.startswith("Investigating") for m in messages[:peak])
        assert "Issue resolved, returning to work" in messages[peak:]


class TestDemoProducer:
    def test_releases_only_due_records(self):
        now = [200.0]
        queue = EventQueue()
        producer = DemoProducer(DemoGenerator(seed=2, start=200.0), Normalizer(), queue, clock=lambda: now[0])

        assert producer.poll_once() == len(DEMO_LANDMARKS)
        assert producer.poll_once() == 0

        now[0] = 260.0
        released = producer.poll_once()
        events = queue.drain()
        assert released == len(events) - len(DEMO_LANDMARKS)
        assert all(e.timestamp <= 260.0 for e in events)
