"""Tests for the Heatmap Accumulator."""

import pytest

from hive_kernel.heatmap.accumulator import Heatmap
from hive_kernel.models.config import HeatmapConfig
from hive_kernel.models.field import Agent, Position

TICK = 1 / 60


def _agent(x: float, y: float, intensity: float = 1.0) -> Agent:
    return Agent(id=f"a-{x}-{y}", position=Position(x=x, y=y), intensity=intensity)


class TestHeatmap:
    def setup_method(self):
        self.heatmap = Heatmap()

    def test_starts_cold(self):
        grid = self.heatmap.grid()
        assert len(grid) == 12
        assert len(grid[0]) == 40
        assert self.heatmap.total() == 0.0

    def test_deposit_at_nearest_cell_with_spread(self):
        agent = _agent(0.5, 0.5)
        self.heatmap.step([agent], TICK)
        center = self.heatmap.heat_at(agent.position)
        assert center == pytest.approx(0.05)

        col = round(0.5 * 39)
        row = round(0.5 * 11)
        assert self.heatmap.cell(col - 1, row) == pytest.approx(0.05 * 0.3)
        assert self.heatmap.cell(col, row + 1) == pytest.approx(0.05 * 0.3)
        assert self.heatmap.cell(col + 2, row) == 0.0

    def test_zero_elapsed_changes_nothing(self):
        self.heatmap.step([_agent(0.5, 0.5)], TICK)
        before = self.heatmap.grid()
        self.heatmap.step([_agent(0.2, 0.2)], 0.0)
        assert self.heatmap.grid() == before

    def test_decay_scales_with_elapsed_time(self):
        a = Heatmap()
        b = Heatmap()
        for h in (a, b):
            for _ in range(20):
                h.step([_agent(0.5, 0.5)], TICK)
        a.decay(2 * TICK)
        b.decay(TICK)
        b.decay(TICK)
        assert a.total() == pytest.approx(b.total())

    def test_cells_below_threshold_snap_to_zero(self):
        self.heatmap.step([_agent(0.5, 0.5, intensity=0.5)], TICK)
        assert self.heatmap.total() > 0
        for _ in range(200):
            self.heatmap.step([], TICK)
        assert self.heatmap.total() == 0.0

    def test_heat_is_capped(self):
        for _ in range(500):
            self.heatmap.step([_agent(0.5, 0.5)], TICK)
        assert self.heatmap.max_value() <= 1.0
        assert self.heatmap.max_value() == pytest.approx(1.0)

    def test_idle_agents_leave_no_heat(self):
        self.heatmap.step([_agent(0.5, 0.5, intensity=0.0)], TICK)
        assert self.heatmap.total() == 0.0

    def test_clear(self):
        self.heatmap.step([_agent(0.5, 0.5)], TICK)
        self.heatmap.clear()
        assert self.heatmap.total() == 0.0

    def test_resize_clears_only_on_change(self):
        self.heatmap.step([_agent(0.5, 0.5)], TICK)
        self.heatmap.resize(40, 12)
        assert self.heatmap.total() > 0
        self.heatmap.resize(20, 6)
        assert self.heatmap.total() == 0.0
        assert len(self.heatmap.grid()) == 6
        assert len(self.heatmap.grid()[0]) == 20

    def test_custom_grid(self):
        heatmap = Heatmap(HeatmapConfig(width=4, height=3))
        heatmap.step([_agent(0.05, 0.05)], TICK)
        assert heatmap.cell(0, 0) > 0
        assert heatmap.cell(1, 0) > 0
        assert heatmap.cell(0, 1) > 0
