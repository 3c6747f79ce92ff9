from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from scanimg import __version__

DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_CONCURRENCY = 5
DEFAULT_IGNORED_DIRS = ["node_modules", ".git"]
OUTPUT_FORMATS = ("table", "json")

class GeneralConfig(BaseModel):
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, gt=0)
    ignored_dirs: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_DIRS))
    user_agent: str = f"scanimg/{__version__}"
    log_path: Optional[str] = None
    debug: bool = False

    @field_validator("ignored_dirs")
    @classmethod
    def validate_ignored_dirs(cls, v: List[str]) -> List[str]:
        cleaned = []
        for name in v:
            name = name.strip()
            if not name:
                raise ValueError("ignored_dirs entries must be non-empty directory names")
            if "/" in name or "\\" in name:
                raise ValueError(f"ignored_dirs entry '{name}' must be a bare directory name, not a path")
            if name not in cleaned:
                cleaned.append(name)
        return cleaned

class UiConfig(BaseModel):
    """Report and progress display settings."""
    progress: bool = True
    output_format: str = Field(default="table")

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        value = v.strip().lower()
        if value not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output_format: {v}. Use one of {list(OUTPUT_FORMATS)}")
        return value

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    input_dirs: List[str] = Field(default_factory=list)
    ui: UiConfig = Field(default_factory=UiConfig)
