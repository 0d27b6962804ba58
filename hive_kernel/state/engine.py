"""
State Engine — sole owner of the canonical agent, connection and landmark maps.

Updated by: the pipeline (live events) and the replay engine (recorded events)
Queried by: Semantic Positioner, Heatmap Accumulator, presentation views

Behavioral Contract:
- apply() is deterministic: the same events in the same order produce the same maps
- tick(now) is a pure function of now and the maps (expiry and staleness only)
- Agents are never removed except by reset()
- Never raises for validated events; bad values are rejected at ingestion
"""

import logging
from typing import Dict, List, Optional, Union

from hive_kernel.models.config import StateConfig
from hive_kernel.models.events import AgentUpdate, ConnectionEvent, LandmarkEvent
from hive_kernel.models.field import (
    Agent,
    ConceptCluster,
    Connection,
    FieldState,
    Position,
    TrailPoint,
    clamp,
    connection_key,
)

logger = logging.getLogger("hive_kernel.state.engine")

ANIMATION_FIELDS = {"position", "target_position", "trail"}


def _bounded_focus(keywords, limit: int) -> List[str]:
    """Collapse duplicates (keeping the latest occurrence) and keep the newest `limit`."""
    seen = set()
    ordered = []
    for keyword in reversed(list(keywords)):
        key = keyword.lower()
        if key in seen:
            continue
        seen.add(key)
        ordered.append(keyword)
    ordered.reverse()
    return ordered[-limit:]


class StateEngine:
    """
    In-memory canonical state for one session.
    Landmark centers are resolved by an injected resolver so the engine
    stays independent of the positioning algorithm.
    """

    def __init__(
        self,
        config: Optional[StateConfig] = None,
        landmark_resolver=None,
        landmark_radius: float = 0.12,
    ):
        self.config = config or StateConfig()
        self._resolve_center = landmark_resolver
        self._landmark_radius = landmark_radius
        self._state = FieldState()
        self._events_applied = 0
        self._last_tick: Optional[float] = None

    @property
    def state(self) -> FieldState:
        """The live maps. Callers outside the update loop must treat this as read-only."""
        return self._state

    @property
    def agents(self) -> Dict[str, Agent]:
        return self._state.agents

    @property
    def connections(self) -> Dict[str, Connection]:
        return self._state.connections

    @property
    def landmarks(self) -> Dict[str, ConceptCluster]:
        return self._state.landmarks

    @property
    def landmark_revision(self) -> int:
        return self._state.landmark_revision

    @property
    def events_applied(self) -> int:
        return self._events_applied

    @property
    def implicit_agents_created(self) -> int:
        return self._state.implicit_agents_created

    @property
    def last_tick(self) -> Optional[float]:
        return self._last_tick

    # --- Event application ---

    def apply(self, event: Union[AgentUpdate, ConnectionEvent, LandmarkEvent]) -> None:
        """Apply one validated event."""
        if isinstance(event, AgentUpdate):
            self._apply_agent_update(event)
        elif isinstance(event, ConnectionEvent):
            self._apply_connection(event)
        elif isinstance(event, LandmarkEvent):
            self._apply_landmark(event)
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")
        self._events_applied += 1

    def apply_all(self, events) -> None:
        for event in events:
            self.apply(event)

    def _ensure_agent(self, agent_id: str, timestamp: float, implicit: bool) -> Agent:
        agent = self._state.agents.get(agent_id)
        if agent is None:
            agent = Agent(
                id=agent_id,
                created_at=timestamp,
                last_updated=timestamp,
                implicit=implicit,
                color_index=self._state.agents_created,
            )
            self._state.agents[agent_id] = agent
            self._state.agents_created += 1
            if implicit:
                self._state.implicit_agents_created += 1
                logger.debug("Created implicit agent %s from a connection", agent_id)
        return agent

    def _apply_agent_update(self, update: AgentUpdate) -> None:
        agent = self._ensure_agent(update.agent_id, update.timestamp, implicit=False)

        # Partial-field overwrite: None keeps the prior value
        if update.status is not None:
            agent.status = update.status
        if update.focus is not None:
            agent.focus = _bounded_focus(update.focus, self.config.max_focus)
        if update.intensity is not None:
            agent.intensity = clamp(update.intensity, 0.0, 1.0)
        if update.message is not None:
            agent.message = update.message

        agent.last_updated = update.timestamp
        agent.stale = False
        agent.implicit = False

    def _apply_connection(self, event: ConnectionEvent) -> None:
        # Unknown references create minimal agents rather than dropping the link
        self._ensure_agent(event.source, event.timestamp, implicit=True)
        self._ensure_agent(event.target, event.timestamp, implicit=True)

        key = connection_key(event.pair_key)
        # A repeated pair replaces the old entry, which refreshes its TTL
        self._state.connections.pop(key, None)
        self._state.connections[key] = Connection(
            source=event.source,
            target=event.target,
            label=event.label,
            created_at=event.timestamp,
            ttl_seconds=self.config.connection_ttl_seconds,
        )

    def _apply_landmark(self, event: LandmarkEvent) -> None:
        if event.center is not None:
            center = Position(x=event.center[0], y=event.center[1]).clamped()
        elif self._resolve_center is not None:
            center = self._resolve_center(list(event.keywords))
        else:
            center = Position.center()

        self._state.landmarks[event.id] = ConceptCluster(
            id=event.id,
            label=event.label or event.id,
            keywords=list(event.keywords),
            center=center,
            radius=event.radius if event.radius is not None else self._landmark_radius,
            defined_at=event.timestamp,
        )
        self._state.landmark_revision += 1

    # --- Housekeeping ---

    def tick(self, now: float) -> int:
        """
        Expire connections and refresh staleness flags.
        Returns the number of connections expired.
        """
        expired = [
            key for key, conn in self._state.connections.items()
            if conn.is_expired(now)
        ]
        for key in expired:
            del self._state.connections[key]

        stale_after = self.config.stale_after_seconds
        for agent in self._state.agents.values():
            agent.stale = (now - agent.last_updated) > stale_after

        self._last_tick = now
        return len(expired)

    def record_trails(self, now: float) -> None:
        """Append the current position to each agent's trail if it moved enough."""
        cap = self.config.max_trail
        min_step = self.config.trail_min_step
        for agent in self._state.agents.values():
            if agent.trail and agent.trail[-1].position.distance_to(agent.position) < min_step:
                continue
            agent.trail.append(
                TrailPoint(position=agent.position, timestamp=now, intensity=agent.intensity)
            )
            if len(agent.trail) > cap:
                del agent.trail[: len(agent.trail) - cap]

    # --- Queries ---

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self._state.agents.get(agent_id)

    def agents_sorted(self) -> List[Agent]:
        """Agents in stable id order."""
        return [self._state.agents[k] for k in sorted(self._state.agents)]

    def active_connections(self) -> List[Connection]:
        return list(self._state.connections.values())

    def snapshot(self) -> dict:
        """Serializable snapshot of the full state."""
        return self._state.model_dump(mode="json")

    def canonical(self) -> dict:
        """
        Snapshot of the event-derived state only. Animated fields (position,
        target_position, trail) belong to the positioner and are excluded.
        """
        return self._state.model_dump(
            mode="json",
            exclude={"agents": {"__all__": ANIMATION_FIELDS}},
        )

    # --- Lifecycle ---

    def reset(self) -> None:
        """Clear all state for a fresh session."""
        self._state = FieldState()
        self._events_applied = 0
        self._last_tick = None
        logger.info("State engine reset")

    def copy(self) -> "StateEngine":
        """Deep copy sharing configuration and resolver."""
        clone = StateEngine(
            config=self.config,
            landmark_resolver=self._resolve_center,
            landmark_radius=self._landmark_radius,
        )
        clone._state = self._state.model_copy(deep=True)
        clone._events_applied = self._events_applied
        clone._last_tick = self._last_tick
        return clone
