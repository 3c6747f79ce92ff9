import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

def load_config(config_path: Optional[Path]) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model.

    Without a path the defaults are returned.
    """
    if config_path is None:
        return AppConfig()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping at the top level")

    # A bare 'ignore' list at the root is accepted as general.ignored_dirs
    ignore = data.pop("ignore", None)
    if ignore is not None:
        data.setdefault("general", {}).setdefault("ignored_dirs", ignore)

    return AppConfig(**data)
