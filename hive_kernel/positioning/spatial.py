"""
Spatial Hash + Collision Avoidance.

A uniform grid over the unit square so that neighbour lookups only touch the
agent's own cell and the 8 around it. Cells are at least twice the minimum
separation distance, so every pair closer than that distance is found.

Separation is resolved in passes: each pass sums one mutual impulse per
overlapping pair, applies all of them at once and re-clamps to the field.
An isolated overlapping pair is pushed out to min_distance * (1 + slop) in
a single pass. Passes repeat until no pair overlaps or the pass budget runs
out. Passes work on plain (x, y) tuples; Positions are built once per resolve.
"""

import math
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from hive_kernel.models.config import CollisionConfig
from hive_kernel.models.field import Position, clamp_to_bounds

COINCIDENT_EPSILON = 1e-9

Point = Tuple[float, float]


def djb2(text: str) -> int:
    """Classic djb2 string hash, wrapped to 32 bits."""
    h = 5381
    for byte in text.encode("utf-8"):
        h = (h * 33 + byte) & 0xFFFFFFFF
    return h


def coincident_direction(a: str, b: str) -> Tuple[float, float]:
    """
    Unit vector used to separate two agents at the same point.
    Derived from the ordered id pair so both agents agree on it.
    """
    first, second = (a, b) if a <= b else (b, a)
    angle = math.radians(djb2(f"{first}|{second}") % 360)
    return math.cos(angle), math.sin(angle)


class SpatialHash:
    """Uniform grid of point indices, rebuilt from scratch each pass."""

    def __init__(self, cell_size: float = 0.16):
        self.cell_size = cell_size
        self.grid_width = max(1, math.ceil(1.0 / cell_size))
        self.grid_height = self.grid_width
        self._cells: Dict[Tuple[int, int], List[int]] = defaultdict(list)

    def _cell_of(self, point: Point) -> Tuple[int, int]:
        cx = int(math.floor(point[0] / self.cell_size))
        cy = int(math.floor(point[1] / self.cell_size))
        return (
            min(max(cx, 0), self.grid_width - 1),
            min(max(cy, 0), self.grid_height - 1),
        )

    def rebuild(self, points: List[Point]) -> None:
        self._cells.clear()
        for index, point in enumerate(points):
            self._cells[self._cell_of(point)].append(index)

    def get_nearby(self, point: Point) -> List[int]:
        """Indices in the point's cell and its 8 neighbours, including the point itself."""
        cx, cy = self._cell_of(point)
        nearby = []
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                indices = self._cells.get((cx + dx, cy + dy))
                if indices:
                    nearby.extend(indices)
        return nearby

    def agent_count(self) -> int:
        return sum(len(v) for v in self._cells.values())

    def clear(self) -> None:
        self._cells.clear()


class CollisionAvoidance:
    """Keeps agents at least min_distance apart."""

    def __init__(self, config: Optional[CollisionConfig] = None):
        self.config = config or CollisionConfig()
        self.spatial_hash = SpatialHash(self.config.effective_cell_size)

    @property
    def min_distance(self) -> float:
        return self.config.min_distance

    def _impulse(self, distance: float) -> float:
        # Per agent: half of what the pair needs to reach the padded distance
        goal = self.config.min_distance * (1.0 + self.config.slop)
        return self.config.separation_force * (goal - distance) / 2.0

    def calculate_separation_forces(
        self, ids: List[str], points: List[Point]
    ) -> Tuple[List[Point], int]:
        """
        Summed separation impulse per agent, plus the number of overlapping pairs.
        Does not modify points.
        """
        self.spatial_hash.rebuild(points)
        md = self.config.min_distance
        forces = []
        overlapping = 0

        for i, (px, py) in enumerate(points):
            fx = fy = 0.0
            for j in self.spatial_hash.get_nearby((px, py)):
                if j == i:
                    continue
                ox, oy = points[j]
                dx = px - ox
                dy = py - oy
                dist = math.hypot(dx, dy)
                if dist >= md:
                    continue

                if i < j:
                    overlapping += 1
                magnitude = self._impulse(dist)
                if dist < COINCIDENT_EPSILON:
                    ux, uy = coincident_direction(ids[i], ids[j])
                    if ids[i] > ids[j]:
                        ux, uy = -ux, -uy
                else:
                    ux, uy = dx / dist, dy / dist
                fx += ux * magnitude
                fy += uy * magnitude
            forces.append((fx, fy))

        return forces, overlapping

    def separate(self, ids: List[str], points: List[Point]) -> Tuple[List[Point], int]:
        """One pass over tuples. Returns the new points and the overlaps found before moving."""
        forces, overlapping = self.calculate_separation_forces(ids, points)
        if overlapping == 0:
            return points, 0
        moved = [
            (clamp_to_bounds(x + fx), clamp_to_bounds(y + fy))
            for (x, y), (fx, fy) in zip(points, forces)
        ]
        return moved, overlapping

    def apply_separation(
        self, ids: List[str], positions: List[Position]
    ) -> Tuple[List[Position], int]:
        """One pass. Returns the new positions and the overlaps found before moving."""
        moved, overlapping = self.separate(ids, [p.as_tuple() for p in positions])
        return [Position(x=x, y=y) for x, y in moved], overlapping

    def resolve(
        self,
        ids: List[str],
        positions: List[Position],
        max_passes: Optional[int] = None,
    ) -> Tuple[List[Position], int]:
        """
        Run passes until no pair overlaps. Returns the positions and the number
        of passes that moved something.
        """
        budget = max_passes if max_passes is not None else self.config.max_passes
        current = [p.as_tuple() for p in positions]
        passes = 0
        while passes < budget:
            current, overlapping = self.separate(ids, current)
            if overlapping == 0:
                break
            passes += 1
        return [Position(x=x, y=y) for x, y in current], passes


def closest_pair_distance(positions: List[Position]) -> float:
    """Smallest pairwise distance (inf for fewer than two points)."""
    best = math.inf
    for i in range(len(positions)):
        for j in range(i + 1, len(positions)):
            best = min(best, positions[i].distance_to(positions[j]))
    return best
