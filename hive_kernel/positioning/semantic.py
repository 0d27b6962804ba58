"""
Semantic Positioner — maps agent focus keywords to a place on the field.

Agents working on related concepts drift toward the same region:

  1. Scoring:      each focus keyword is matched against cluster keywords
                   (exact 1.0, substring either way 0.5). Landmarks are
                   consulted first; a keyword that hits any landmark scores
                   landmarks only, otherwise it scores the built-in clusters.
  2. Target:       weighted centroid of the scoring cluster centers, or the
                   fallback cluster when nothing matched.
  3. Slots:        targets separated by collision avoidance, one resting
                   slot per agent (agents sharing a target fan out).
  4. Interpolation: eased, time-based approach toward the slot.
  5. Collision:    grid-accelerated separation passes on the moved points.

The positioner writes only position, target_position and trail.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from hive_kernel.models.config import CollisionConfig, PositionerConfig
from hive_kernel.models.field import ConceptCluster, FieldState, Position
from hive_kernel.positioning.motion import interpolate
from hive_kernel.positioning.spatial import CollisionAvoidance, djb2

logger = logging.getLogger("hive_kernel.positioning.semantic")

CACHE_LIMIT = 4096
SLOT_CACHE_LIMIT = 64


def _builtin(cid: str, label: str, x: float, y: float, radius: float, keywords: str) -> ConceptCluster:
    return ConceptCluster(
        id=cid,
        label=label,
        keywords=keywords.split(),
        center=Position(x=x, y=y),
        radius=radius,
        builtin=True,
    )


BUILTIN_CLUSTERS: Tuple[ConceptCluster, ...] = (
    _builtin("frontend", "Frontend", 0.2, 0.2, 0.15,
             "frontend ui css html react vue angular component button form layout style design"),
    _builtin("backend", "Backend", 0.8, 0.2, 0.15,
             "backend api rest graphql endpoint server route controller middleware http request"),
    _builtin("database", "Database", 0.2, 0.8, 0.15,
             "database sql postgres mysql mongodb redis query schema migration model table index"),
    _builtin("infra", "Infrastructure", 0.8, 0.8, 0.15,
             "docker kubernetes deploy ci cd pipeline aws cloud terraform infrastructure devops"),
    _builtin("auth", "Auth", 0.5, 0.15, 0.12,
             "auth authentication jwt oauth session login password token security permission role"),
    _builtin("testing", "Testing", 0.5, 0.85, 0.12,
             "test testing unit integration e2e mock jest pytest spec coverage assertion"),
    _builtin("state", "State / Data", 0.15, 0.5, 0.12,
             "state store redux context data cache memory storage persist sync"),
    _builtin("logic", "Logic", 0.85, 0.5, 0.12,
             "logic business service handler processor workflow validation rule algorithm"),
    _builtin("core", "Core", 0.5, 0.5, 0.1,
             "main core app init config setup entry root base"),
)

FALLBACK_CLUSTER = ConceptCluster(
    id="fallback",
    label="Unclassified",
    keywords=[],
    center=Position.center(),
    radius=0.1,
    builtin=True,
)


def match_weight(keyword: str, candidate: str, exact: float = 1.0, partial: float = 0.5) -> float:
    """Both arguments must already be lower-cased."""
    if not keyword or not candidate:
        return 0.0
    if keyword == candidate:
        return exact
    if keyword in candidate or candidate in keyword:
        return partial
    return 0.0


def hashed_position(keyword: str) -> Position:
    """Stable position in [0.15, 0.85] for a keyword no cluster recognizes."""
    h = djb2(keyword)
    return Position(
        x=(h % 1000) / 1000.0 * 0.7 + 0.15,
        y=((h // 1000) % 1000) / 1000.0 * 0.7 + 0.15,
    )


class SemanticPositioner:
    """Computes targets from focus keywords and moves agents toward them."""

    def __init__(
        self,
        config: Optional[PositionerConfig] = None,
        collision: Optional[CollisionConfig] = None,
    ):
        self.config = config or PositionerConfig()
        self.collision = CollisionAvoidance(collision)
        self._cache: Dict[tuple, Position] = {}
        self._slots: Dict[tuple, Dict[str, Position]] = {}

    # --- Clusters ---

    @property
    def builtin_clusters(self) -> List[ConceptCluster]:
        return list(BUILTIN_CLUSTERS) if self.config.builtin_clusters else []

    def clusters(self, state: FieldState) -> List[ConceptCluster]:
        """Landmarks (by id), then built-ins, then the fallback. Never empty."""
        landmarks = [state.landmarks[k] for k in sorted(state.landmarks)]
        return landmarks + self.builtin_clusters + [FALLBACK_CLUSTER]

    def cluster_at(self, position: Position, state: FieldState) -> Optional[ConceptCluster]:
        """Nearest cluster whose radius contains the position."""
        best = None
        best_distance = None
        for cluster in self.clusters(state):
            distance = cluster.center.distance_to(position)
            if distance > cluster.radius:
                continue
            if best_distance is None or distance < best_distance:
                best, best_distance = cluster, distance
        return best

    # --- Scoring ---

    def _best_match(self, keyword: str, cluster: ConceptCluster) -> float:
        best = 0.0
        for candidate in cluster.keywords:
            weight = match_weight(
                keyword,
                candidate.lower(),
                self.config.exact_match_weight,
                self.config.partial_match_weight,
            )
            if weight > best:
                best = weight
        return best

    def score(self, focus: Iterable[str], landmarks: List[ConceptCluster]) -> Dict[str, float]:
        """Accumulated match weight per cluster id. Zero scores are omitted."""
        scores: Dict[str, float] = {}
        for keyword in focus:
            kw = keyword.lower()
            hits = {}
            for landmark in landmarks:
                weight = self._best_match(kw, landmark)
                if weight > 0:
                    hits[landmark.id] = weight
            if not hits:
                for cluster in self.builtin_clusters:
                    weight = self._best_match(kw, cluster)
                    if weight > 0:
                        hits[cluster.id] = weight
            for cid, weight in hits.items():
                scores[cid] = scores.get(cid, 0.0) + weight
        return scores

    def target_for(self, focus: Iterable[str], state: FieldState, digest: Optional[int] = None) -> Position:
        """Weighted centroid of matching cluster centers (memoized)."""
        focus_key = tuple(k.lower() for k in focus)
        if digest is None:
            digest = self._landmark_digest(state)
        key = (focus_key, state.landmark_revision, digest)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        landmarks = [state.landmarks[k] for k in sorted(state.landmarks)]
        scores = self.score(focus_key, landmarks)
        total = sum(scores.values())
        if total <= 0:
            target = FALLBACK_CLUSTER.center
        else:
            by_id = {c.id: c for c in landmarks + self.builtin_clusters}
            x = sum(by_id[cid].center.x * s for cid, s in scores.items()) / total
            y = sum(by_id[cid].center.y * s for cid, s in scores.items()) / total
            target = Position(x=x, y=y).clamped()

        if len(self._cache) >= CACHE_LIMIT:
            self._cache.clear()
        self._cache[key] = target
        return target

    def _landmark_digest(self, state: FieldState) -> int:
        # Two engines can share a revision number with different landmark sets
        return hash(tuple(
            (lid, lm.center.x, lm.center.y, tuple(lm.keywords))
            for lid, lm in sorted(state.landmarks.items())
        ))

    def derive_landmark_center(self, keywords: List[str]) -> Position:
        """
        Center for a landmark defined without one: the mean of each keyword's
        best built-in cluster center, or of its hashed position when no
        built-in cluster matches.
        """
        if not keywords:
            return Position.center()

        xs = ys = 0.0
        for keyword in keywords:
            kw = keyword.lower()
            best_cluster = None
            best_weight = 0.0
            for cluster in BUILTIN_CLUSTERS:
                weight = self._best_match(kw, cluster)
                if weight > best_weight:
                    best_cluster, best_weight = cluster, weight
            point = best_cluster.center if best_cluster is not None else hashed_position(kw)
            xs += point.x
            ys += point.y
        return Position(x=xs / len(keywords), y=ys / len(keywords)).clamped()

    def clear_cache(self) -> None:
        self._cache.clear()
        self._slots.clear()

    # --- Motion ---

    def update_targets(self, state: FieldState) -> None:
        digest = self._landmark_digest(state)
        for agent in state.agents.values():
            agent.target_position = self.target_for(agent.focus, state, digest)

    def resting_slots(self, state: FieldState) -> Dict[str, Position]:
        """
        Where each agent comes to rest: the targets, separated by collision
        avoidance. Agents sharing a cluster get distinct slots around it, so
        interpolation never pulls a settled crowd back into overlap.

        Depends only on agent ids and targets (memoized on both).
        """
        ids = sorted(state.agents)
        targets = [state.agents[aid].target_position for aid in ids]
        key = tuple((aid, t.x, t.y) for aid, t in zip(ids, targets))
        slots = self._slots.get(key)
        if slots is not None:
            return slots

        budget = self.collision.config.settle_passes
        resolved, passes = self.collision.resolve(ids, targets, max_passes=budget)
        if passes >= budget:
            logger.warning("Resting slots for %d agents still overlap after %d passes", len(ids), passes)
        slots = dict(zip(ids, resolved))

        if len(self._slots) >= SLOT_CACHE_LIMIT:
            self._slots.clear()
        self._slots[key] = slots
        return slots

    def step(self, state: FieldState, dt: float) -> int:
        """
        Position phase for one tick: retarget, interpolate toward the resting
        slot, separate. Returns the number of collision passes used.
        dt <= 0 only retargets.
        """
        self.update_targets(state)
        if dt <= 0 or not state.agents:
            return 0

        slots = self.resting_slots(state)
        ids = sorted(state.agents)
        moved = [
            interpolate(
                state.agents[aid].position,
                slots[aid],
                dt,
                self.config.approach_rate,
                self.config.easing,
            )
            for aid in ids
        ]
        resolved, passes = self.collision.resolve(ids, moved)
        for aid, position in zip(ids, resolved):
            state.agents[aid].position = position
        return passes

    def settle(self, state: FieldState) -> int:
        """
        Place every agent at its resting slot. Used after a seek so the
        reconstructed layout depends only on the canonical state.
        """
        self.update_targets(state)
        if not state.agents:
            return 0

        slots = self.resting_slots(state)
        ids = sorted(state.agents)
        resolved, passes = self.collision.resolve(
            ids, [slots[aid] for aid in ids], max_passes=self.collision.config.settle_passes
        )
        for aid, position in zip(ids, resolved):
            agent = state.agents[aid]
            agent.position = position
            agent.trail = []
        logger.debug("Settled %d agents in %d collision passes", len(ids), passes)
        return passes
