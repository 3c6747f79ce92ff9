from typing import Optional

from rich.console import Console
from rich.status import Status

from scanimg.domain.events import (
    DiscoveryFinished,
    DiscoveryStarted,
    ProbeCompleted,
    ProcessingFinished,
)
from scanimg.infrastructure.event_bus import EventBus


class ProbeProgress:
    """Subscribes to EventBus and drives a rich spinner while probes run.

    The spinner goes to the given console (stderr in the CLI) so it never
    mixes with the report on stdout.
    """

    def __init__(self, bus: EventBus, console: Optional[Console] = None):
        self.bus = bus
        self.console = console or Console(stderr=True)
        self.total = 0
        self.completed = 0
        self._status: Optional[Status] = None
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(DiscoveryStarted, self.on_discovery_started)
        self.bus.subscribe(DiscoveryFinished, self.on_discovery_finished)
        self.bus.subscribe(ProbeCompleted, self.on_probe_completed)
        self.bus.subscribe(ProcessingFinished, self.on_processing_finished)

    @property
    def running(self) -> bool:
        return self._status is not None

    @property
    def message(self) -> str:
        if self.total == 0:
            return "Scanning for image references..."
        return f"Inspecting {self.total} images... ({self.completed}/{self.total})"

    def _start(self):
        if self._status is None:
            self._status = Status(self.message, console=self.console, spinner="dots")
            self._status.start()

    def _refresh(self):
        if self._status is not None:
            self._status.update(self.message)

    def on_discovery_started(self, event: DiscoveryStarted):
        self.total = 0
        self.completed = 0
        self._start()

    def on_discovery_finished(self, event: DiscoveryFinished):
        self.total = event.targets_found
        self.completed = 0
        if self.total:
            self._start()
        self._refresh()

    def on_probe_completed(self, event: ProbeCompleted):
        self.total = event.total
        self.completed = event.completed
        self._refresh()

    def on_processing_finished(self, event: ProcessingFinished):
        self.stop()

    def stop(self):
        if self._status is not None:
            self._status.stop()
            self._status = None
