"""
Heatmap Accumulator — a decaying grid of recent agent presence.

The grid is derived data: it is stepped once per tick from agent positions
and intensities, never fed by events directly. Decay and deposit are both
scaled by elapsed time relative to a 60 Hz reference, so a 1/30 s tick
decays exactly as much as two 1/60 s ticks.
"""

from typing import Iterable, List, Optional

from hive_kernel.models.config import HeatmapConfig
from hive_kernel.models.field import Agent, Position


class Heatmap:
    def __init__(self, config: Optional[HeatmapConfig] = None):
        self.config = config or HeatmapConfig()
        self.width = self.config.width
        self.height = self.config.height
        self._cells: List[float] = [0.0] * (self.width * self.height)

    def _cell_of(self, position: Position):
        col = int(round(min(1.0, max(0.0, position.x)) * (self.width - 1)))
        row = int(round(min(1.0, max(0.0, position.y)) * (self.height - 1)))
        return col, row

    def _add(self, col: int, row: int, amount: float) -> None:
        if 0 <= col < self.width and 0 <= row < self.height:
            idx = row * self.width + col
            self._cells[idx] = min(self.config.max_heat, self._cells[idx] + amount)

    def decay(self, elapsed: float) -> None:
        """Multiplicative decay scaled to elapsed time; cells under threshold snap to zero."""
        if elapsed <= 0:
            return
        factor = pow(self.config.decay_rate, elapsed * self.config.reference_hz)
        threshold = self.config.threshold
        cells = self._cells
        for i in range(len(cells)):
            value = cells[i] * factor
            cells[i] = value if value >= threshold else 0.0

    def deposit(self, position: Position, intensity: float, elapsed: float) -> None:
        """Add heat at the nearest cell and a fraction of it to the 4 orthogonal neighbours."""
        if elapsed <= 0 or intensity <= 0:
            return
        amount = intensity * self.config.accumulation_rate * elapsed * self.config.reference_hz
        col, row = self._cell_of(position)
        self._add(col, row, amount)

        spread = amount * self.config.spread
        self._add(col - 1, row, spread)
        self._add(col + 1, row, spread)
        self._add(col, row - 1, spread)
        self._add(col, row + 1, spread)

    def step(self, agents: Iterable[Agent], elapsed: float) -> None:
        """One tick: decay everything, then deposit for each agent."""
        if elapsed <= 0:
            return
        self.decay(elapsed)
        for agent in agents:
            self.deposit(agent.position, agent.intensity, elapsed)

    def clear(self) -> None:
        self._cells = [0.0] * (self.width * self.height)

    def resize(self, width: int, height: int) -> None:
        """Change grid dimensions. Heat is discarded when the size changes."""
        width = max(1, width)
        height = max(1, height)
        if width == self.width and height == self.height:
            return
        self.width = width
        self.height = height
        self.clear()

    def heat_at(self, position: Position) -> float:
        col, row = self._cell_of(position)
        return self._cells[row * self.width + col]

    def cell(self, col: int, row: int) -> float:
        return self._cells[row * self.width + col]

    def grid(self) -> List[List[float]]:
        """Copy of the grid as rows (row 0 is y = 0)."""
        w = self.width
        return [self._cells[r * w:(r + 1) * w] for r in range(self.height)]

    def total(self) -> float:
        return sum(self._cells)

    def max_value(self) -> float:
        return max(self._cells) if self._cells else 0.0
