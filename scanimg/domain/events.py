"""Domain events for the image scan pipeline.

Events flow through the EventBus so that the orchestrator never talks to the
UI layer directly. The progress spinner and any other observer subscribe to
the events they care about.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from typing import List
from pathlib import Path
from pydantic import BaseModel
from .models import MetadataRecord, Target


class Event(BaseModel):
    """Base class for all domain events.

    Events are validated Pydantic models. They are not frozen by default.
    """

    pass


class DiscoveryStarted(Event):
    """Emitted before the collector walks the input paths."""

    paths: List[Path]


class DiscoveryFinished(Event):
    """Emitted once every distinct image reference has been collected."""

    targets_found: int
    remote_count: int = 0
    local_count: int = 0


class ProbeStarted(Event):
    """Emitted when a target's probe is handed to the pool."""

    target: Target


class ProbeCompleted(Event):
    """Emitted on the scheduling thread each time a probe settles."""

    record: MetadataRecord
    completed: int
    total: int


class ProcessingFinished(Event):
    """Emitted after aggregation, when the report rows are ready."""

    rows: int = 0
