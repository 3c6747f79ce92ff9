from typing import Callable, Iterable, Tuple

from scanimg.domain.models import MetadataRecord, ReportRow

UNKNOWN_SIZE_KEY = -1


def size_sort_key(row: ReportRow) -> int:
    """Unknown sizes compare below every known size (including 0)."""
    return row.size if row.size is not None else UNKNOWN_SIZE_KEY


def aggregate(
    records: Iterable[MetadataRecord],
    occurrence_lookup: Callable[[str], int],
) -> Tuple[ReportRow, ...]:
    """Attach occurrence counts and order rows by size, largest first.

    ``sorted`` is stable even with ``reverse=True``, so rows of equal size keep
    their discovery order. Input records are left untouched.
    """
    rows = [
        ReportRow.from_record(record, occurrences=occurrence_lookup(record.target_id))
        for record in records
    ]
    return tuple(sorted(rows, key=size_sort_key, reverse=True))
