"""
Event Normalizer — the validation boundary between raw records and the core.

Behavioral Contract:
- Accepts one raw record (a JSON text line or an already-decoded mapping)
- Emits a typed, validated HiveEvent or nothing
- Malformed records are dropped and counted, never raised to the caller
- Out-of-range numerics are clamped to the nearest valid bound and counted
- Unrecognized record types are ignored and counted
"""

import json
import logging
import math
import threading
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from hive_kernel.models.events import EVENT_TYPES, HiveEvent
from hive_kernel.models.field import BOUND_MAX, BOUND_MIN
from hive_kernel.models.history import AnyEvent
from hive_kernel.models.view import IngestStats

logger = logging.getLogger("hive_kernel.ingest.normalizer")

_EVENT_ADAPTER = TypeAdapter(HiveEvent)

RADIUS_MIN = 0.01
RADIUS_MAX = 0.5


class IngestError(Exception):
    """Base class for ingestion failures."""
    pass


class MalformedInput(IngestError):
    """Raised when a record fails schema validation."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _clamp_field(record: dict, name: str, low: float, high: float) -> int:
    """Clamp a numeric field in place. Returns 1 if the value changed."""
    value = record.get(name)
    if not _is_number(value):
        return 0
    if not math.isfinite(value):
        raise MalformedInput(f"{name} is not a finite number")
    clamped = min(high, max(low, value))
    if clamped != value:
        record[name] = clamped
        return 1
    return 0


def _clamp_out_of_range(record: dict) -> int:
    """Apply the OutOfRangeValue policy. Returns the number of clamped fields."""
    clamped = _clamp_field(record, "timestamp", 0.0, math.inf)

    kind = record["type"]
    if kind == "agent_update":
        clamped += _clamp_field(record, "intensity", 0.0, 1.0)
    elif kind == "landmark":
        clamped += _clamp_field(record, "radius", RADIUS_MIN, RADIUS_MAX)
        center = record.get("center")
        if isinstance(center, (list, tuple)) and len(center) == 2 and all(_is_number(c) for c in center):
            coords = {"x": center[0], "y": center[1]}
            changed = _clamp_field(coords, "x", BOUND_MIN, BOUND_MAX)
            changed += _clamp_field(coords, "y", BOUND_MIN, BOUND_MAX)
            if changed:
                record["center"] = [coords["x"], coords["y"]]
                clamped += 1
    return clamped


def _summarize(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid')}" if location else first.get("msg", "invalid")


class Normalizer:
    """
    Converts raw records into HiveEvents.
    Safe to share between producer threads; counters are lock-protected.
    """

    def __init__(self):
        self._stats = IngestStats()
        self._lock = threading.Lock()

    @property
    def stats(self) -> IngestStats:
        """A copy of the current counters."""
        with self._lock:
            return self._stats.model_copy()

    def reset_stats(self) -> None:
        with self._lock:
            self._stats = IngestStats()

    def normalize(self, raw: Any) -> Optional[AnyEvent]:
        """
        Normalize one record. Returns None when the record is blank,
        malformed or of an unrecognized type.
        """
        if isinstance(raw, (str, bytes)) and not raw.strip():
            return None

        try:
            event, clamped = self.parse(raw)
        except MalformedInput as e:
            self._count(malformed=1)
            logger.debug("Dropped malformed record: %s", e.reason)
            return None

        if event is None:
            self._count(ignored=1)
            return None

        self._count(accepted=1, clamped=clamped)
        return event

    def normalize_many(self, raws: Iterable[Any]) -> List[AnyEvent]:
        """Normalize a batch, preserving order and skipping dropped records."""
        events = []
        for raw in raws:
            event = self.normalize(raw)
            if event is not None:
                events.append(event)
        return events

    def parse(self, raw: Any) -> Tuple[Optional[AnyEvent], int]:
        """
        Validate one record without touching the counters.
        Returns (event, clamped_field_count); event is None for unknown types.
        Raises MalformedInput.
        """
        record = self._decode(raw)

        kind = record.get("type")
        if kind is None:
            raise MalformedInput("missing 'type' discriminator")
        if not isinstance(kind, str):
            raise MalformedInput("'type' must be a string")
        if kind not in EVENT_TYPES:
            return None, 0

        clamped = _clamp_out_of_range(record)

        try:
            event = _EVENT_ADAPTER.validate_python(record)
        except ValidationError as exc:
            raise MalformedInput(_summarize(exc)) from exc

        if kind == "connection" and event.source == event.target:
            raise MalformedInput("connection endpoints must differ")
        return event, clamped

    def _decode(self, raw: Any) -> dict:
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise MalformedInput("record is not valid UTF-8") from exc

        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise MalformedInput(f"invalid JSON: {exc.msg}") from exc

        if not isinstance(raw, dict):
            raise MalformedInput("record must be a JSON object")
        # Work on a copy; clamping rewrites fields in place.
        return dict(raw)

    def _count(self, accepted: int = 0, malformed: int = 0, ignored: int = 0, clamped: int = 0) -> None:
        with self._lock:
            self._stats.accepted += accepted
            self._stats.malformed += malformed
            self._stats.ignored += ignored
            self._stats.clamped += clamped
