"""Event Log Record — one entry in the append-only history."""

from typing import Optional, Union

from pydantic import BaseModel

from hive_kernel.models.events import AgentUpdate, ConnectionEvent, HiveEvent, LandmarkEvent


class LogRecord(BaseModel):
    """
    A recorded event with its position in the log.

    timestamp is log time: never less than the previous record's timestamp,
    even when producers deliver events out of order. seq breaks ties.
    """

    seq: int
    timestamp: float
    event: HiveEvent

    # INTEGRITY
    signature: str = ""
    prior_signature: Optional[str] = None


AnyEvent = Union[AgentUpdate, ConnectionEvent, LandmarkEvent]
