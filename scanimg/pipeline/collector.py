"""Discovery of image references in a source tree.

Text files are searched for anything that looks like an image path or URL.
Each reference is classified once (remote URL vs local path), normalized, and
folded into a Target keyed by its canonical form; repeated sightings only add
to the Target's set of source files.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from urllib.parse import unquote, urlparse

from scanimg.domain.models import Target, TargetKind
from scanimg.infrastructure.file_probe import display_path
from scanimg.infrastructure.file_scanner import FileScanner

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ("png", "jpe?g", "gif", "webp", "svg", "avif", "bmp", "ico")
_EXT_GROUP = "|".join(IMAGE_EXTENSIONS)

IMAGE_EXT_PATTERN = re.compile(rf"\.(?:{_EXT_GROUP})(?:\?.*)?$", re.IGNORECASE)
IMAGE_REF_PATTERN = re.compile(
    rf"""[^\s"'`)(<>]+?\.(?:{_EXT_GROUP})(?:\?[^\s"'`)(<>]*)?""",
    re.IGNORECASE,
)
_IDENTIFIER_CHAR = re.compile(r"[0-9A-Za-z_$]")
_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)
_FILE_URL = re.compile(r"^file://", re.IGNORECASE)
_DATA_URI = re.compile(r"^data:", re.IGNORECASE)


def extract_references(content: str) -> List[str]:
    """Image-looking tokens in ``content``, in order of appearance.

    Matches glued to identifier characters (``foo.pngx``, ``a.png_b``) and
    template placeholders (``{name}.png``) are dropped.
    """
    references = []
    for match in IMAGE_REF_PATTERN.finditer(content):
        value = match.group(0)
        if not IMAGE_EXT_PATTERN.search(value):
            continue

        start, end = match.start(), match.end()
        prev_char = content[start - 1] if start > 0 else ""
        next_char = content[end] if end < len(content) else ""
        if _IDENTIFIER_CHAR.match(prev_char) or _IDENTIFIER_CHAR.match(next_char):
            continue
        if "{" in value or "}" in value:
            continue

        references.append(value.strip())
    return references


def _file_url_to_path(value: str) -> str:
    parsed = urlparse(value)
    path = unquote(parsed.path)
    if os.name == "nt" and path.startswith("/"):
        path = path[1:]
    return path


def classify_reference(raw_value: str, source_file: Path, cwd: Path) -> Optional[Target]:
    """Turn one raw reference into a Target, or None if it is not probeable."""
    if not raw_value:
        return None
    value = raw_value.strip()
    if not value or _DATA_URI.match(value):
        return None

    if _HTTP_URL.match(value) or value.startswith("//"):
        url = f"https:{value}" if value.startswith("//") else value
        return Target(
            id=f"{TargetKind.REMOTE.value}::{url}",
            kind=TargetKind.REMOTE,
            request=url,
            display=url,
        )

    candidate = _file_url_to_path(value) if _FILE_URL.match(value) else value
    candidate = re.sub(r"[?#].*$", "", candidate)
    if not candidate:
        return None

    base_dir = Path(source_file).parent
    absolute = candidate if os.path.isabs(candidate) else os.path.join(base_dir, candidate)
    normalized = Path(os.path.normpath(absolute))
    return Target(
        id=f"{TargetKind.LOCAL.value}::{normalized}",
        kind=TargetKind.LOCAL,
        request=str(normalized),
        display=display_path(normalized, cwd),
    )


def read_text(file_path: Path) -> str:
    """File contents as text, or '' (with a warning) if it cannot be read."""
    try:
        return file_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning(f"Failed to read file: {file_path}. Skipped. Reason: {e}")
        return ""


class ReferenceCollector:
    """Builds the id -> Target map for a set of input paths."""

    def __init__(self, file_scanner: FileScanner, cwd: Optional[Path] = None):
        self.file_scanner = file_scanner
        self.cwd = Path(cwd) if cwd else Path.cwd()

    def _add(self, targets: Dict[str, Target], target: Target, source: Path) -> None:
        existing = targets.get(target.id)
        if existing is None:
            targets[target.id] = target
            existing = target
        existing.sources.add(source)

    def collect(self, paths: Iterable[Path]) -> Dict[str, Target]:
        """Walk every input path; raises FileNotFoundError for a missing one."""
        targets: Dict[str, Target] = {}
        files_scanned = 0

        for src_path in paths:
            root = Path(os.path.abspath(self.cwd / Path(src_path)))
            for file_path in self.file_scanner.scan(root):
                files_scanned += 1

                # An image file in the tree is a target in its own right
                if IMAGE_EXT_PATTERN.search(file_path.name):
                    normalized = Path(os.path.normpath(file_path))
                    image = Target(
                        id=f"{TargetKind.LOCAL.value}::{normalized}",
                        kind=TargetKind.LOCAL,
                        request=str(normalized),
                        display=display_path(normalized, self.cwd),
                    )
                    self._add(targets, image, normalized)
                    continue

                content = read_text(file_path)
                if not content:
                    continue

                for reference in extract_references(content):
                    target = classify_reference(reference, file_path, self.cwd)
                    if target is None:
                        continue
                    self._add(targets, target, file_path)

        logger.info(f"Scanned {files_scanned} files, {len(targets)} distinct image references")
        return targets
