"""Tests for the spatial hash and collision avoidance."""

import pytest

from hive_kernel.models.config import CollisionConfig
from hive_kernel.models.field import BOUND_MAX, BOUND_MIN, Position
from hive_kernel.positioning.spatial import (
    CollisionAvoidance,
    SpatialHash,
    closest_pair_distance,
    coincident_direction,
    djb2,
)


def _ids(n: int):
    return [f"agent-{i:02d}" for i in range(n)]


class TestDjb2:
    def test_known_values(self):
        assert djb2("") == 5381
        assert djb2("a") == 5381 * 33 + ord("a")

    def test_wraps_to_32_bits(self):
        assert 0 <= djb2("x" * 200) < 2 ** 32

    def test_coincident_direction_is_symmetric(self):
        assert coincident_direction("a", "b") == coincident_direction("b", "a")


class TestSpatialHash:
    def test_rebuild_counts_agents(self):
        grid = SpatialHash()
        grid.rebuild([(0.1, 0.1), (0.5, 0.5), (0.9, 0.9)])
        assert grid.agent_count() == 3
        grid.clear()
        assert grid.agent_count() == 0

    def test_nearby_finds_close_and_skips_far(self):
        grid = SpatialHash()
        points = [(0.1, 0.1), (0.12, 0.12), (0.9, 0.9)]
        grid.rebuild(points)
        nearby = grid.get_nearby(points[0])
        assert 0 in nearby
        assert 1 in nearby
        assert 2 not in nearby


class TestCollisionAvoidance:
    def setup_method(self):
        self.avoidance = CollisionAvoidance()

    def test_close_pair_is_separated_in_one_pass(self):
        positions = [Position(x=0.5, y=0.5), Position(x=0.52, y=0.5)]
        moved, overlapping = self.avoidance.apply_separation(["a", "b"], positions)
        assert overlapping == 1
        assert moved[0].distance_to(moved[1]) >= self.avoidance.min_distance

    def test_pair_is_pushed_past_min_distance_by_slop(self):
        points, overlapping = self.avoidance.separate(["a", "b"], [(0.4, 0.5), (0.45, 0.5)])
        assert overlapping == 1
        assert points[1][0] - points[0][0] == pytest.approx(0.08 * 1.01)
        assert points[0][1] == points[1][1] == 0.5

    def test_separate_leaves_clear_points_alone(self):
        points = [(0.2, 0.2), (0.6, 0.6)]
        moved, overlapping = self.avoidance.separate(["a", "b"], points)
        assert overlapping == 0
        assert moved == points

    def test_far_agents_untouched(self):
        positions = [Position(x=0.2, y=0.2), Position(x=0.8, y=0.8)]
        moved, passes = self.avoidance.resolve(["a", "b"], positions)
        assert passes == 0
        assert moved == positions

    def test_coincident_agents_split_deterministically(self):
        positions = [Position(x=0.5, y=0.5), Position(x=0.5, y=0.5)]
        first, _ = self.avoidance.resolve(["a", "b"], positions)
        second, _ = self.avoidance.resolve(["a", "b"], positions)
        assert first == second
        assert first[0].distance_to(first[1]) >= self.avoidance.min_distance

    def test_result_independent_of_input_order(self):
        ids = ["x", "y", "z"]
        positions = [Position(x=0.5, y=0.5), Position(x=0.5, y=0.5), Position(x=0.53, y=0.5)]
        forward, _ = self.avoidance.resolve(ids, positions)
        backward, _ = self.avoidance.resolve(list(reversed(ids)), list(reversed(positions)))
        by_id = dict(zip(reversed(ids), backward))
        for aid, pos in zip(ids, forward):
            assert pos.x == pytest.approx(by_id[aid].x)
            assert pos.y == pytest.approx(by_id[aid].y)

    def test_fifty_agents_on_one_spot_converge(self):
        ids = _ids(50)
        positions = [Position(x=0.2, y=0.8) for _ in ids]
        resolved, _ = self.avoidance.resolve(ids, positions, max_passes=256)
        assert closest_pair_distance(resolved) >= self.avoidance.min_distance - 1e-9
        for pos in resolved:
            assert BOUND_MIN <= pos.x <= BOUND_MAX
            assert BOUND_MIN <= pos.y <= BOUND_MAX

    def test_custom_min_distance(self):
        avoidance = CollisionAvoidance(CollisionConfig(min_distance=0.05, cell_size=0.05))
        assert avoidance.spatial_hash.cell_size == pytest.approx(0.1)
        positions = [Position(x=0.3, y=0.3), Position(x=0.32, y=0.3)]
        resolved, _ = avoidance.resolve(["a", "b"], positions)
        assert resolved[0].distance_to(resolved[1]) >= 0.05


class TestClosestPair:
    def test_fewer_than_two(self):
        assert closest_pair_distance([Position()]) == float("inf")

    def test_value(self):
        assert closest_pair_distance([
            Position(x=0.1, y=0.1), Position(x=0.4, y=0.1), Position(x=0.1, y=0.2),
        ]) == pytest.approx(0.1)
