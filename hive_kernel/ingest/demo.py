"""
Demo Source — a seeded, scripted session of six agents.

Six personalities with their own areas, pace and collaboration habits move
through a narrative cycle: exploration, discovery, collaboration and
resolution. Now and then every agent converges on one area (a swarm) and
then disperses again.

Records are raw wire dicts stamped on a virtual clock, so one seed always
yields the same session. DemoProducer releases them to the event queue as
the real clock catches up with their timestamps.
"""

import logging
import random
import threading
import time
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from hive_kernel.ingest.normalizer import Normalizer
from hive_kernel.ingest.queue import EventQueue, QueueClosed
from hive_kernel.models.events import AgentStatus

logger = logging.getLogger("hive_kernel.ingest.demo")


# === PERSONALITIES ===

class ActivityStyle(str, Enum):
    FAST = "fast"           # Short intervals, high-intensity bursts
    STEADY = "steady"       # Consistent medium activity
    BURSTY = "bursty"       # Long idle stretches, then sudden activity


class AgentPersonality(BaseModel):
    """How one demo agent works: its areas, pace and habits."""

    model_config = ConfigDict(frozen=True)

    name: str
    role: str
    preferred_areas: Tuple[str, ...]
    activity_style: ActivityStyle
    collaboration_tendency: float = Field(ge=0, le=1)   # Chance of reaching out per cycle
    base_intensity: float = Field(ge=0, le=1)
    messages: Tuple[str, ...]

    def prefers(self, keyword: str) -> bool:
        return any(keyword in area or area in keyword for area in self.preferred_areas)


BACKEND = "Backend Specialist"
FRONTEND = "Frontend Explorer"
TESTER = "Quality Tester"
SECURITY = "Security Specialist"
DEVOPS = "DevOps Engineer"
ARCHITECT = "Architecture Planner"

PERSONALITIES: Tuple[AgentPersonality, ...] = (
    AgentPersonality(
        name="Atlas",
        role=BACKEND,
        preferred_areas=("api", "database", "schema", "query", "model", "endpoint"),
        activity_style=ActivityStyle.STEADY,
        collaboration_tendency=0.3,
        base_intensity=0.5,
        messages=(
            "Optimizing query performance",
            "Schema migration in progress",
            "Refactoring data access layer",
            "Indexing database tables",
            "Reviewing API contracts",
            "Tuning connection pool",
        ),
    ),
    AgentPersonality(
        name="Nova",
        role=FRONTEND,
        preferred_areas=("frontend", "react", "component", "ui", "style", "layout"),
        activity_style=ActivityStyle.FAST,
        collaboration_tendency=0.8,
        base_intensity=0.7,
        messages=(
            "Building new component",
            "Styling user interface",
            "Optimizing render cycle",
            "Testing responsiveness",
            "Exploring design patterns",
            "Refining user experience",
        ),
    ),
    AgentPersonality(
        name="Echo",
        role=TESTER,
        preferred_areas=("test", "unit", "integration", "mock", "coverage", "debug"),
        activity_style=ActivityStyle.BURSTY,
        collaboration_tendency=0.4,
        base_intensity=0.4,
        messages=(
            "Running test suite",
            "Analyzing test coverage",
            "Found edge case issue",
            "Validating error handling",
            "Checking regression tests",
            "Investigating flaky test",
        ),
    ),
    AgentPersonality(
        name="Cipher",
        role=SECURITY,
        preferred_areas=("auth", "jwt", "session", "login", "permission", "security"),
        activity_style=ActivityStyle.STEADY,
        collaboration_tendency=0.2,
        base_intensity=0.45,
        messages=(
            "Auditing access controls",
            "Validating JWT tokens",
            "Reviewing auth flow",
            "Checking permission matrix",
            "Scanning for vulnerabilities",
            "Hardening session management",
        ),
    ),
    AgentPersonality(
        name="Flux",
        role=DEVOPS,
        preferred_areas=("deploy", "docker", "ci", "kubernetes", "pipeline", "infra"),
        activity_style=ActivityStyle.FAST,
        collaboration_tendency=0.6,
        base_intensity=0.6,
        messages=(
            "Configuring deployment",
            "Building container image",
            "Updating CI pipeline",
            "Scaling infrastructure",
            "Monitoring health checks",
            "Optimizing build times",
        ),
    ),
    AgentPersonality(
        name="Sage",
        role=ARCHITECT,
        preferred_areas=("architecture", "design", "pattern", "planning", "review"),
        activity_style=ActivityStyle.BURSTY,
        collaboration_tendency=0.5,
        base_intensity=0.3,
        messages=(
            "Reviewing system design",
            "Planning module structure",
            "Analyzing dependencies",
            "Documenting architecture",
            "Evaluating trade-offs",
            "Proposing improvements",
        ),
    ),
)

# Seconds between one agent's updates
UPDATE_INTERVALS: Dict[ActivityStyle, Tuple[float, float]] = {
    ActivityStyle.FAST: (0.5, 0.9),
    ActivityStyle.STEADY: (0.8, 1.2),
    ActivityStyle.BURSTY: (1.0, 1.5),
}


# === NARRATIVE ===

class NarrativePhase(str, Enum):
    EXPLORATION = "exploration"         # Agents spread out over their own areas
    DISCOVERY = "discovery"             # Some of them start to focus
    COLLABORATION = "collaboration"     # Agents connect and work together
    RESOLUTION = "resolution"           # Work concludes, agents disperse

    @property
    def duration_range(self) -> Tuple[float, float]:
        return _PHASE_DURATIONS[self]

    def next(self) -> "NarrativePhase":
        phases = list(NarrativePhase)
        return phases[(phases.index(self) + 1) % len(phases)]


_PHASE_DURATIONS = {
    NarrativePhase.EXPLORATION: (8.0, 12.0),
    NarrativePhase.DISCOVERY: (6.0, 10.0),
    NarrativePhase.COLLABORATION: (10.0, 15.0),
    NarrativePhase.RESOLUTION: (5.0, 8.0),
}

_PHASE_INTENSITY = {
    NarrativePhase.EXPLORATION: 0.7,
    NarrativePhase.DISCOVERY: 1.0,
    NarrativePhase.COLLABORATION: 1.2,
    NarrativePhase.RESOLUTION: 0.6,
}

# Chance that an agent stays within its preferred areas
_PHASE_LOYALTY = {
    NarrativePhase.EXPLORATION: 0.9,
    NarrativePhase.DISCOVERY: 0.7,
    NarrativePhase.COLLABORATION: 0.5,
    NarrativePhase.RESOLUTION: 0.8,
}

FOCUS_AREAS: Tuple[Tuple[str, str], ...] = (
    ("authentication", "jwt"),
    ("database", "schema"),
    ("frontend", "react"),
    ("api", "endpoints"),
    ("testing", "unit"),
    ("deploy", "docker"),
    ("cache", "redis"),
    ("logging", "errors"),
)

DEMO_LANDMARKS: Tuple[Tuple[str, str, Tuple[str, ...]], ...] = (
    ("auth-zone", "Authentication", ("auth", "jwt", "session", "login")),
    ("data-zone", "Database", ("database", "schema", "query", "model")),
    ("ui-zone", "Frontend", ("frontend", "react", "component", "ui")),
    ("api-zone", "API Layer", ("api", "endpoint", "rest", "handler")),
    ("test-zone", "Testing", ("test", "unit", "integration", "mock")),
    ("ops-zone", "DevOps", ("deploy", "docker", "ci", "kubernetes")),
)


# === MESSAGES AND LABELS ===

_AREA_MESSAGES: List[Tuple[Tuple[str, ...], Tuple[str, ...]]] = [
    (("auth", "jwt", "login"), (
        "Reviewing authentication flow",
        "Checking JWT validation",
        "Auditing session handling",
        "Validating credentials",
    )),
    (("database", "schema", "query"), (
        "Analyzing query patterns",
        "Reviewing schema design",
        "Optimizing data access",
        "Checking index usage",
    )),
    (("frontend", "react", "ui"), (
        "Inspecting component tree",
        "Checking render performance",
        "Reviewing state management",
        "Analyzing UI patterns",
    )),
    (("api", "endpoint"), (
        "Mapping API routes",
        "Reviewing endpoint contracts",
        "Checking request handlers",
        "Validating response formats",
    )),
    (("test", "unit"), (
        "Examining test cases",
        "Reviewing test coverage",
        "Checking assertions",
        "Analyzing test patterns",
    )),
    (("deploy", "docker", "ci"), (
        "Reviewing deployment config",
        "Checking container setup",
        "Analyzing pipeline stages",
        "Validating infrastructure",
    )),
    (("cache", "redis"), (
        "Analyzing cache patterns",
        "Reviewing cache keys",
        "Checking cache invalidation",
        "Optimizing cache usage",
    )),
    (("logging", "error"), (
        "Reviewing error handling",
        "Analyzing log patterns",
        "Checking error boundaries",
        "Validating error messages",
    )),
]

_GENERIC_MESSAGES = (
    "Exploring code patterns",
    "Analyzing structure",
    "Reviewing implementation",
    "Checking dependencies",
)

# role -> (labels when it reaches out, labels when it is reached)
_ROLE_LABELS: List[Tuple[str, Tuple[str, ...], Tuple[str, ...]]] = [
    (TESTER, ("found test case", "coverage report", "regression check"),
             ("needs testing", "review test plan", "edge case found")),
    (SECURITY, ("security review", "auth validation", "permission check"),
               ("needs security review", "auth question", "access check")),
    (DEVOPS, ("deploy config", "infra update", "pipeline change"),
             ("needs deployment", "env config ask", "build help")),
    (ARCHITECT, ("design guidance", "pattern suggestion", "review request"),
                ("design question", "architecture review", "pattern advice")),
]

_PAIR_LABELS: Dict[Tuple[str, str], Tuple[str, ...]] = {
    (BACKEND, FRONTEND): ("API contract review", "data format sync", "endpoint validation"),
    (FRONTEND, BACKEND): ("requesting data shape", "query optimization ask", "API feedback"),
}

_GENERIC_LABELS = ("sharing findings", "coordinating work", "syncing progress", "knowledge transfer")

_SWARM_LABELS: List[Tuple[str, Tuple[str, ...]]] = [
    ("auth", ("auth issue found", "security concern", "credential problem")),
    ("database", ("data integrity issue", "query bottleneck", "schema conflict")),
    ("frontend", ("UI regression", "render issue", "component bug")),
    ("api", ("API breaking change", "endpoint failure", "contract violation")),
    ("test", ("test failure cascade", "coverage gap", "critical regression")),
    ("deploy", ("deployment blocker", "infra issue", "pipeline failure")),
]

_GENERIC_SWARM_LABELS = ("critical issue found", "needs collaboration", "converging on problem")


def contextual_message(personality: AgentPersonality, focus: Sequence[str], rng: random.Random) -> str:
    """The agent's own lines when the focus is in its areas, otherwise a line about the focus."""
    if any(personality.prefers(keyword) for keyword in focus):
        return rng.choice(personality.messages)

    first = focus[0] if focus else ""
    for triggers, messages in _AREA_MESSAGES:
        if any(t in first for t in triggers):
            return rng.choice(messages)
    return rng.choice(_GENERIC_MESSAGES)


def connection_label(source: AgentPersonality, target: AgentPersonality, rng: random.Random) -> str:
    labels = _PAIR_LABELS.get((source.role, target.role))
    if labels is None:
        labels = _GENERIC_LABELS
        for role, outgoing, incoming in _ROLE_LABELS:
            if source.role == role:
                labels = outgoing
                break
            if target.role == role:
                labels = incoming
                break
    return rng.choice(labels)


def swarm_connection_label(area: str, rng: random.Random) -> str:
    for trigger, labels in _SWARM_LABELS:
        if trigger in area:
            return rng.choice(labels)
    return rng.choice(_GENERIC_SWARM_LABELS)


# === SELECTION ===

def pick_intensity(personality: AgentPersonality, phase: NarrativePhase, rng: random.Random) -> float:
    style = personality.activity_style
    if style == ActivityStyle.FAST:
        variance = rng.uniform(0.2, 0.4)
    elif style == ActivityStyle.STEADY:
        variance = rng.uniform(0.05, 0.15)
    elif rng.random() < 0.3:
        variance = rng.uniform(0.4, 0.6)
    else:
        variance = rng.uniform(-0.2, 0.1)
    value = (personality.base_intensity + variance) * _PHASE_INTENSITY[phase]
    return min(1.0, max(0.1, value))


def pick_status(personality: AgentPersonality, phase: NarrativePhase, rng: random.Random) -> AgentStatus:
    style = personality.activity_style
    if style == ActivityStyle.FAST:
        roll = rng.randrange(10)
        if roll <= 7:
            return AgentStatus.ACTIVE
        return AgentStatus.THINKING if roll == 8 else AgentStatus.IDLE

    if style == ActivityStyle.STEADY:
        roll = rng.randrange(10)
        # Upper bounds of the active and thinking rolls per phase
        active, thinking = {
            NarrativePhase.EXPLORATION: (4, 7),
            NarrativePhase.DISCOVERY: (6, 9),
            NarrativePhase.COLLABORATION: (7, 9),
            NarrativePhase.RESOLUTION: (3, 6),
        }[phase]
        if roll <= active:
            return AgentStatus.ACTIVE
        return AgentStatus.THINKING if roll <= thinking else AgentStatus.IDLE

    # Bursty: mostly quiet, sometimes a burst
    if rng.random() < 0.7:
        roll = rng.randrange(10)
        if roll <= 1:
            return AgentStatus.ACTIVE
        if roll <= 4:
            return AgentStatus.THINKING
        return AgentStatus.WAITING if roll <= 6 else AgentStatus.IDLE
    return AgentStatus.ACTIVE if rng.randrange(10) <= 7 else AgentStatus.THINKING


def pick_focus(personality: AgentPersonality, phase: NarrativePhase, rng: random.Random) -> Tuple[str, str]:
    if rng.random() < _PHASE_LOYALTY[phase]:
        own = [area for area in FOCUS_AREAS if any(personality.prefers(kw) for kw in area)]
        if own:
            return rng.choice(own)
    return rng.choice(FOCUS_AREAS)


# === GENERATOR ===

class SwarmState:
    """Gradual convergence of every agent on one area, then dispersal."""

    def __init__(self):
        self.active = False
        self.buildup_progress = 0.0
        self.target_area: Optional[int] = None
        self.converged: List[int] = []
        self.resolution_progress = 0.0

    def start(self, target_area: int) -> None:
        self.active = True
        self.buildup_progress = 0.0
        self.target_area = target_area
        self.converged = []
        self.resolution_progress = 0.0

    @property
    def building_up(self) -> bool:
        return self.active and self.buildup_progress < 1.0


class DemoGenerator:
    """
    Produces the demo session as raw records.

    Landmarks come first, then each agent starting up, then an endless
    narrative loop. The virtual clock starts at `start` and advances by the
    pauses between records.
    """

    def __init__(self, seed: Optional[int] = None, start: float = 0.0, swarm_after: int = 90):
        self.rng = random.Random(seed)
        self.now = start
        self.swarm_after = swarm_after          # Cycles between swarms, at least
        self.phase = NarrativePhase.EXPLORATION
        self.swarm = SwarmState()

    def _sleep(self, seconds: float) -> None:
        self.now += seconds

    def _update(
        self,
        personality: AgentPersonality,
        status: AgentStatus,
        focus: Sequence[str],
        intensity: float,
        message: str,
    ) -> dict:
        return {
            "type": "agent_update",
            "agent_id": personality.name,
            "status": status.value,
            "focus": list(focus),
            "intensity": min(1.0, intensity),
            "message": message,
            "timestamp": self.now,
        }

    def _connect(self, source: AgentPersonality, target: AgentPersonality, label: str) -> dict:
        return {
            "type": "connection",
            "from": source.name,
            "to": target.name,
            "label": label,
            "timestamp": self.now,
        }

    def _phase_duration(self) -> float:
        return self.rng.uniform(*self.phase.duration_range)

    def records(self) -> Iterator[dict]:
        rng = self.rng
        for landmark_id, label, keywords in DEMO_LANDMARKS:
            yield {
                "type": "landmark",
                "id": landmark_id,
                "label": label,
                "keywords": list(keywords),
                "timestamp": self.now,
            }
        self._sleep(0.5)

        for i, personality in enumerate(PERSONALITIES):
            focus = pick_focus(personality, NarrativePhase.EXPLORATION, rng)
            yield self._update(
                personality, AgentStatus.IDLE, focus, 0.1, f"{personality.role} starting up..."
            )
            self._sleep(0.3 + i * 0.1)

        phase_started = self.now
        phase_duration = self._phase_duration()
        cycles_since_swarm = 0
        last_index = 0

        while True:
            if self.now - phase_started >= phase_duration:
                self.phase = self.phase.next()
                phase_started = self.now
                phase_duration = self._phase_duration()
                logger.debug("Demo narrative entered %s", self.phase.value)

            cycles_since_swarm += 1
            if (
                not self.swarm.active
                and cycles_since_swarm > self.swarm_after
                and self.phase == NarrativePhase.DISCOVERY
                and rng.random() < 0.1
            ):
                self.swarm.start(rng.randrange(len(FOCUS_AREAS)))
                cycles_since_swarm = 0
                logger.debug("Demo swarm converging on %s", FOCUS_AREAS[self.swarm.target_area][0])

            if self.swarm.active:
                yield from self._swarm_update()
                if self.swarm.resolution_progress >= 1.0:
                    self.swarm.active = False
                self._sleep(0.4)
                continue

            updates = 2 if self.phase == NarrativePhase.COLLABORATION else 1
            for _ in range(updates):
                # Mostly round-robin, sometimes anyone
                if rng.random() < 0.7:
                    last_index = (last_index + 1) % len(PERSONALITIES)
                    index = last_index
                else:
                    index = rng.randrange(len(PERSONALITIES))

                personality = PERSONALITIES[index]
                focus = pick_focus(personality, self.phase, rng)
                status = pick_status(personality, self.phase, rng)
                intensity = pick_intensity(personality, self.phase, rng)
                message = contextual_message(personality, focus, rng)
                yield self._update(personality, status, focus, intensity, message)
                self._sleep(rng.uniform(*UPDATE_INTERVALS[personality.activity_style]))

            if self.phase in (NarrativePhase.DISCOVERY, NarrativePhase.COLLABORATION):
                source_index = rng.randrange(len(PERSONALITIES))
                source = PERSONALITIES[source_index]
                if rng.random() < source.collaboration_tendency:
                    target_index = rng.randrange(len(PERSONALITIES))
                    while target_index == source_index:
                        target_index = rng.randrange(len(PERSONALITIES))
                    target = PERSONALITIES[target_index]
                    yield self._connect(source, target, connection_label(source, target, rng))

            self._sleep(rng.uniform(0.3, 0.6))

    def _swarm_update(self) -> Iterator[dict]:
        rng = self.rng
        swarm = self.swarm
        focus = FOCUS_AREAS[swarm.target_area or 0]
        area = focus[0]

        if swarm.building_up:
            # One more agent joins per step
            swarm.buildup_progress += 0.15
            remaining = [i for i in range(len(PERSONALITIES)) if i not in swarm.converged]
            if remaining:
                newcomer = rng.choice(remaining)
                swarm.converged.append(newcomer)
                personality = PERSONALITIES[newcomer]
                yield self._update(
                    personality,
                    AgentStatus.ACTIVE,
                    focus,
                    0.6 + swarm.buildup_progress * 0.4,
                    f"Investigating {area} issue...",
                )
                if len(swarm.converged) > 1:
                    other = PERSONALITIES[swarm.converged[rng.randrange(len(swarm.converged) - 1)]]
                    yield self._connect(personality, other, swarm_connection_label(area, rng))

            for index in swarm.converged[:-1]:
                yield self._update(
                    PERSONALITIES[index],
                    AgentStatus.ACTIVE,
                    focus,
                    0.7 + swarm.buildup_progress * 0.3,
                    "Collaborating on issue",
                )

        elif swarm.resolution_progress == 0.0:
            # Peak: everyone on the issue, meshed together
            for index, personality in enumerate(PERSONALITIES):
                yield self._update(
                    personality,
                    AgentStatus.ACTIVE,
                    focus,
                    rng.uniform(0.85, 1.0),
                    "Critical issue identified!",
                )
                if index > 0:
                    other = PERSONALITIES[rng.randrange(index)]
                    yield self._connect(personality, other, "working together")
            self._sleep(2.0)
            swarm.resolution_progress = 0.1

        elif swarm.resolution_progress < 1.0:
            swarm.resolution_progress += 0.2
            dispersing = int(swarm.resolution_progress * len(PERSONALITIES))
            for index, personality in enumerate(PERSONALITIES):
                if index < dispersing:
                    yield self._update(
                        personality,
                        AgentStatus.THINKING,
                        pick_focus(personality, NarrativePhase.RESOLUTION, rng),
                        0.3 + rng.uniform(0.0, 0.2),
                        "Issue resolved, returning to work",
                    )
                else:
                    yield self._update(
                        personality,
                        AgentStatus.ACTIVE,
                        focus,
                        0.5 + (1.0 - swarm.resolution_progress) * 0.3,
                        "Wrapping up issue work",
                    )


class DemoProducer:
    """
    Background producer for the demo session: releases each generated
    record once the clock reaches its timestamp.
    """

    def __init__(
        self,
        generator: DemoGenerator,
        normalizer: Normalizer,
        queue: EventQueue,
        clock: Callable[[], float] = time.time,
        poll_interval: float = 0.1,
    ):
        self.generator = generator
        self.normalizer = normalizer
        self.queue = queue
        self.clock = clock
        self.poll_interval = poll_interval
        self._records = generator.records()
        self._pending: Optional[dict] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self) -> int:
        """Enqueue every record that is due. Returns events enqueued."""
        now = self.clock()
        pushed = 0
        while True:
            if self._pending is None:
                self._pending = next(self._records)
            if self._pending["timestamp"] > now:
                return pushed
            record, self._pending = self._pending, None
            event = self.normalizer.normalize(record)
            if event is not None:
                self.queue.put(event)
                pushed += 1

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="hive-demo", daemon=True)
        self._thread.start()
        logger.info("Started demo producer")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Stopped demo producer")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except QueueClosed:
                return
            self._stop.wait(self.poll_interval)
