import logging
import os
import stat
from pathlib import Path
from typing import List, Optional

from scanimg.domain.models import MetadataRecord, ProbePhase, StatusEntry, StatusKind, TargetKind
from scanimg.infrastructure.image_header import ImageHeaderError, dimensions_from_file

logger = logging.getLogger(__name__)


def display_path(path: Path, cwd: Path) -> str:
    """Path relative to cwd, or the absolute path when no relative form exists."""
    try:
        relative = os.path.relpath(path, cwd)
    except ValueError:
        # Different drives on Windows
        return str(path)
    return relative if relative not in ("", ".") else str(path)


class LocalProber:
    """Stat plus header decode for images on the local filesystem.

    Size is exact (st_size); dimensions come from the header only.
    """

    def __init__(self, cwd: Optional[Path] = None):
        self.cwd = Path(cwd) if cwd else Path.cwd()

    def probe(self, path: str, target_id: Optional[str] = None, display: Optional[str] = None) -> MetadataRecord:
        file_path = Path(path)
        status: List[StatusEntry] = []
        size: Optional[int] = None
        width: Optional[int] = None
        height: Optional[int] = None

        def record() -> MetadataRecord:
            return MetadataRecord(
                target_id=target_id or f"{TargetKind.LOCAL.value}::{file_path}",
                target=display or display_path(file_path, self.cwd),
                kind=TargetKind.LOCAL,
                size=size,
                width=width,
                height=height,
                status=tuple(status),
            )

        try:
            st = os.stat(file_path)
        except FileNotFoundError:
            status.append(StatusEntry(phase=ProbePhase.FILE, kind=StatusKind.NOT_FOUND))
            return record()
        except PermissionError:
            status.append(StatusEntry(phase=ProbePhase.FILE, kind=StatusKind.PERMISSION_DENIED))
            return record()
        except OSError as e:
            status.append(StatusEntry(phase=ProbePhase.FILE, kind=StatusKind.FAILED, detail=e.strerror or str(e)))
            return record()

        if not stat.S_ISREG(st.st_mode):
            status.append(StatusEntry(phase=ProbePhase.FILE, kind=StatusKind.NOT_A_FILE))
            return record()

        size = st.st_size

        try:
            width, height = dimensions_from_file(file_path)
        except ImageHeaderError as e:
            status.append(StatusEntry(phase=ProbePhase.DECODE, kind=StatusKind.DECODE_FAILED, detail=str(e)))
        except PermissionError:
            status.append(StatusEntry(phase=ProbePhase.FILE, kind=StatusKind.PERMISSION_DENIED))
        except OSError as e:
            status.append(StatusEntry(phase=ProbePhase.FILE, kind=StatusKind.FAILED, detail=e.strerror or str(e)))

        if not status:
            status.append(StatusEntry(phase=ProbePhase.FILE, kind=StatusKind.OK))

        logger.debug(f"{file_path}: {'; '.join(str(s) for s in status)} (size={size})")
        return record()
