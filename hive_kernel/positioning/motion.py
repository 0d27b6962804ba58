"""Easing curves and time-based interpolation toward a target position."""

import math

from hive_kernel.models.config import EasingFunction
from hive_kernel.models.field import Position, clamp


def ease_linear(t: float) -> float:
    return clamp(t, 0.0, 1.0)


def ease_out_cubic(t: float) -> float:
    """Fast start, slow end."""
    t = clamp(t, 0.0, 1.0)
    return 1.0 - (1.0 - t) ** 3


def ease_in_out_cubic(t: float) -> float:
    """Slow start and end."""
    t = clamp(t, 0.0, 1.0)
    if t < 0.5:
        return 4.0 * t * t * t
    return 1.0 - (-2.0 * t + 2.0) ** 3 / 2.0


def ease_out_elastic(t: float) -> float:
    """Overshoots and settles. Values slightly above 1.0 are expected."""
    t = clamp(t, 0.0, 1.0)
    if t == 0.0 or t == 1.0:
        return t
    c4 = (2.0 * math.pi) / 3.0
    return 2.0 ** (-10.0 * t) * math.sin((t * 10.0 - 0.75) * c4) + 1.0


EASINGS = {
    EasingFunction.LINEAR: ease_linear,
    EasingFunction.EASE_OUT_CUBIC: ease_out_cubic,
    EasingFunction.EASE_IN_OUT_CUBIC: ease_in_out_cubic,
    EasingFunction.EASE_OUT_ELASTIC: ease_out_elastic,
}


def ease(easing: EasingFunction, t: float) -> float:
    return EASINGS[easing](t)


def step_fraction(dt: float, approach_rate: float, easing: EasingFunction) -> float:
    """Fraction of the remaining distance covered in dt seconds."""
    if dt <= 0:
        return 0.0
    return ease(easing, clamp(dt * approach_rate, 0.0, 1.0))


def interpolate(
    current: Position,
    target: Position,
    dt: float,
    approach_rate: float = 1.0,
    easing: EasingFunction = EasingFunction.EASE_OUT_CUBIC,
) -> Position:
    """
    Move current toward target by an eased fraction of the remaining distance.
    Driven by elapsed seconds, so the approach is independent of frame rate
    up to easing curvature. The result is always within field bounds.
    """
    fraction = step_fraction(dt, approach_rate, easing)
    if fraction == 0.0:
        return current.clamped()
    return current.lerp(target, fraction).clamped()
