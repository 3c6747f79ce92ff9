from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Set, Tuple
from pydantic import BaseModel, ConfigDict, Field, model_validator

class TargetKind(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"

class ProbePhase(str, Enum):
    HEAD = "HEAD"
    GET = "GET"
    FILE = "FILE"
    DECODE = "DECODE"
    PROBE = "PROBE"  # Unexpected worker failure caught by the orchestrator

class StatusKind(str, Enum):
    OK = "OK"
    PARTIAL = "PARTIAL"  # 206 Partial Content
    HTTP_ERROR = "HTTP_ERROR"
    TIMEOUT = "TIMEOUT"
    FAILED = "FAILED"
    DECODE_FAILED = "DECODE_FAILED"
    NOT_A_FILE = "NOT_A_FILE"
    NOT_FOUND = "NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"

class StatusEntry(BaseModel):
    """One diagnostic step recorded by a prober.

    Entries stay typed until rendering; ``str(entry)`` produces the token shown
    in the report (``OK(HEAD)``, ``GET 404``, ``HEAD timeout`` ...).
    """

    model_config = ConfigDict(frozen=True)

    phase: ProbePhase
    kind: StatusKind
    code: Optional[int] = None
    detail: Optional[str] = None

    def __str__(self) -> str:
        if self.kind == StatusKind.OK:
            if self.phase == ProbePhase.FILE:
                return "OK(file)"
            return f"OK({self.phase.value})"
        if self.kind == StatusKind.PARTIAL:
            return "OK(Range)"
        if self.kind == StatusKind.HTTP_ERROR:
            return f"{self.phase.value} {self.code}"
        if self.kind == StatusKind.TIMEOUT:
            return f"{self.phase.value} timeout"
        if self.kind == StatusKind.DECODE_FAILED:
            if self.detail:
                return f"Failed to parse resolution: {self.detail}"
            return "Failed to parse resolution"
        if self.kind == StatusKind.NOT_A_FILE:
            return "Not a file"
        if self.kind == StatusKind.NOT_FOUND:
            return "File not found"
        if self.kind == StatusKind.PERMISSION_DENIED:
            return "Permission denied"
        # FAILED
        if self.phase == ProbePhase.FILE:
            return f"File access failed: {self.detail}"
        if self.phase == ProbePhase.PROBE:
            return f"Probe failed: {self.detail}"
        return f"{self.phase.value} failed: {self.detail}"

class Target(BaseModel):
    """A distinct image reference, keyed by its canonical form."""

    id: str
    kind: TargetKind
    request: str
    display: str
    sources: Set[Path] = Field(default_factory=set)

    @property
    def occurrences(self) -> int:
        return len(self.sources)

class MetadataRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_id: str
    target: str
    kind: TargetKind
    size: Optional[int] = Field(default=None, ge=0)
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    status: Tuple[StatusEntry, ...] = ()

    @model_validator(mode="after")
    def validate_dimensions(self):
        if (self.width is None) != (self.height is None):
            raise ValueError("width and height must both be known or both be unknown")
        return self

    @property
    def status_text(self) -> str:
        return "; ".join(str(entry) for entry in self.status) or "Unknown"

class ReportRow(MetadataRecord):
    occurrences: int = Field(default=0, ge=0)

    @classmethod
    def from_record(cls, record: MetadataRecord, occurrences: int) -> "ReportRow":
        data = record.model_dump()
        data["occurrences"] = occurrences
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "type": self.kind.value,
            "size": self.size,
            "width": self.width,
            "height": self.height,
            "status": self.status_text,
            "occurrences": self.occurrences,
        }
