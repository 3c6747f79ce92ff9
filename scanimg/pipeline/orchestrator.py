import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from scanimg.config.models import AppConfig
from scanimg.domain.events import (
    DiscoveryFinished,
    DiscoveryStarted,
    ProbeCompleted,
    ProbeStarted,
    ProcessingFinished,
)
from scanimg.domain.models import MetadataRecord, ProbePhase, ReportRow, StatusEntry, StatusKind, Target, TargetKind
from scanimg.infrastructure.event_bus import EventBus
from scanimg.infrastructure.file_probe import LocalProber
from scanimg.infrastructure.http_probe import RemoteProber
from scanimg.pipeline.aggregator import aggregate
from scanimg.pipeline.collector import ReferenceCollector
from scanimg.pipeline.pool import TaskOutcome, run_bounded


class ScanOrchestrator:
    """Image scan pipeline orchestrator.

    Runs discovery, probes every distinct target through the bounded pool and
    aggregates the results into report rows. Progress is published on the
    EventBus; the orchestrator knows nothing about how it is displayed.

    Every event is published from the calling thread: ``run_bounded`` invokes
    its callbacks there, never from a probe worker.

    Args:
        config: AppConfig; ``general.concurrency`` bounds the pool.
        event_bus: EventBus for discovery and probe lifecycle events.
        collector: ReferenceCollector producing the id -> Target map.
        remote_prober: RemoteProber for http(s) targets.
        local_prober: LocalProber for filesystem targets.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        collector: ReferenceCollector,
        remote_prober: RemoteProber,
        local_prober: LocalProber,
    ):
        self.config = config
        self.event_bus = event_bus
        self.collector = collector
        self.remote_prober = remote_prober
        self.local_prober = local_prober
        self.logger = logging.getLogger(__name__)

        self._probers: Dict[TargetKind, Callable[..., MetadataRecord]] = {
            TargetKind.REMOTE: self.remote_prober.probe,
            TargetKind.LOCAL: self.local_prober.probe,
        }

    def _probe_target(self, target: Target) -> MetadataRecord:
        probe = self._probers[target.kind]
        return probe(target.request, target_id=target.id, display=target.display)

    def _failed_record(self, target: Target, error: BaseException) -> MetadataRecord:
        detail = str(error) or error.__class__.__name__
        return MetadataRecord(
            target_id=target.id,
            target=target.display,
            kind=target.kind,
            status=(StatusEntry(phase=ProbePhase.PROBE, kind=StatusKind.FAILED, detail=detail),),
        )

    def probe_targets(self, targets: Sequence[Target]) -> List[MetadataRecord]:
        """Probe every target; the result is aligned with ``targets``."""
        total = len(targets)
        records: List[Optional[MetadataRecord]] = [None] * total
        completed = 0

        def on_submitted(index: int, target: Target) -> None:
            self.event_bus.publish(ProbeStarted(target=target))

        def on_settled(outcome: TaskOutcome[MetadataRecord]) -> None:
            nonlocal completed
            completed += 1
            target = targets[outcome.index]
            record = outcome.value if outcome.ok else self._failed_record(target, outcome.error)
            records[outcome.index] = record
            self.event_bus.publish(ProbeCompleted(record=record, completed=completed, total=total))

        run_bounded(
            targets,
            self.config.general.concurrency,
            self._probe_target,
            on_submitted=on_submitted,
            on_settled=on_settled,
        )
        return records

    def run(self, paths: Union[Path, List[Path]]) -> Tuple[ReportRow, ...]:
        if isinstance(paths, (str, Path)):
            paths = [Path(paths)]
        paths = [Path(p) for p in paths]

        self.logger.info(f"Discovery started: {len(paths)} paths")
        self.event_bus.publish(DiscoveryStarted(paths=paths))
        target_map = self.collector.collect(paths)
        targets = list(target_map.values())

        remote_count = sum(1 for t in targets if t.kind == TargetKind.REMOTE)
        local_count = len(targets) - remote_count
        self.logger.info(f"Discovery finished: targets={len(targets)}, remote={remote_count}, local={local_count}")
        self.event_bus.publish(DiscoveryFinished(
            targets_found=len(targets),
            remote_count=remote_count,
            local_count=local_count,
        ))

        if not targets:
            self.logger.info("No images to inspect, exiting")
            self.event_bus.publish(ProcessingFinished(rows=0))
            return ()

        records = self.probe_targets(targets)
        rows = aggregate(records, lambda target_id: target_map[target_id].occurrences)

        failed = sum(1 for row in rows if row.width is None)
        self.logger.info(f"Processing finished: rows={len(rows)}, without_resolution={failed}")
        self.event_bus.publish(ProcessingFinished(rows=len(rows)))
        return rows
