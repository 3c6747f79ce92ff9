import json
from typing import Optional, Sequence

from rich.console import Console
from rich.table import Table

from scanimg.domain.models import ReportRow, TargetKind

COLUMNS = ("Index", "Target", "Type", "Size", "Resolution", "Status", "Occurrences")


def format_bytes(size: Optional[int]) -> str:
    """Format size: '-', 0 KB, 12.34 KB, 1.50 MB."""
    if size is None:
        return "-"
    if size == 0:
        return "0 KB"
    kb = size / 1024
    if kb < 1024:
        return f"{kb:.2f} KB"
    return f"{kb / 1024:.2f} MB"


def format_resolution(width: Optional[int], height: Optional[int]) -> str:
    if width is None or height is None:
        return "-"
    return f"{width}x{height}"


def format_kind(kind: TargetKind) -> str:
    return "Remote" if kind == TargetKind.REMOTE else "Local"


def build_table(rows: Sequence[ReportRow]) -> Table:
    table = Table(show_lines=False, header_style="bold")
    for name in COLUMNS:
        justify = "right" if name in ("Index", "Size", "Occurrences") else "left"
        table.add_column(name, justify=justify, overflow="fold")

    for index, row in enumerate(rows, start=1):
        table.add_row(
            str(index),
            row.target,
            format_kind(row.kind),
            format_bytes(row.size),
            format_resolution(row.width, row.height),
            row.status_text,
            str(row.occurrences),
        )
    return table


def render_table(rows: Sequence[ReportRow], console: Optional[Console] = None) -> None:
    """Print the report rows in the order given."""
    console = console or Console()
    if not rows:
        console.print("No images found.")
        return
    console.print(build_table(rows))


def render_json(rows: Sequence[ReportRow]) -> str:
    """JSON array of row dicts (target, type, size, width, height, status, occurrences)."""
    return json.dumps([row.to_dict() for row in rows], indent=2, ensure_ascii=False)
