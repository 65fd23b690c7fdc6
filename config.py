"""
Portal Check Configuration

Precedence: built-in defaults < JSON config file < command-line flags.

Example config file::

    {
      "portal_url": "https://portal.example.org/stream",
      "namespace": "public_ocfl",
      "fixity": true,
      "fetch_filter": "\\.(csv|tsv)$",
      "fetch_workers": 2
    }
"""

import dataclasses
import json
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Tuple, Any, Dict, Pattern

from catalog import DEFAULT_NAMESPACE
from errors import ConfigError
from fetch import DEFAULT_TIMEOUT, DEFAULT_FETCH_CHUNK_SIZE
from repository import DEFAULT_CATALOGS


@dataclass(frozen=True)
class AuditConfig:
    """Settings for one audit run."""

    repo_root: str = "."
    catalogs: Tuple[str, ...] = DEFAULT_CATALOGS
    namespace: str = DEFAULT_NAMESPACE
    portal_url: Optional[str] = None
    fixity: bool = False
    fetch_filter: Optional[str] = None
    scratch_dir: Optional[str] = None
    check_workers: int = 4
    fetch_workers: int = 4
    timeout: float = DEFAULT_TIMEOUT
    chunk_size: int = DEFAULT_FETCH_CHUNK_SIZE
    keep_partial: bool = True
    keep_downloads: bool = False
    _pattern: Optional[Pattern] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        self.validate()
        pattern = re.compile(self.fetch_filter) if self.fetch_filter else None
        object.__setattr__(self, "_pattern", pattern)

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if not f.name.startswith("_"))

    @classmethod
    def from_file(cls, path: str, **overrides: Any) -> "AuditConfig":
        """Load settings from a JSON file, then apply non-None overrides."""
        config_path = Path(path)
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Malformed config file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_path} must contain a JSON object")

        unknown = sorted(set(data) - set(cls.field_names()))
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        data.update(
            (key, value) for key, value in overrides.items() if value is not None
        )
        unknown = sorted(set(data) - set(cls.field_names()))
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(unknown)}")

        if isinstance(data.get("catalogs"), list):
            data["catalogs"] = tuple(data["catalogs"])

        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigError(f"Invalid value in {config_path}: {e}") from e

    def with_overrides(self, **overrides: Any) -> "AuditConfig":
        """Copy with every override that is not None applied."""
        changes: Dict[str, Any] = {
            key: value for key, value in overrides.items() if value is not None
        }
        unknown = sorted(set(changes) - set(self.field_names()))
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(unknown)}")
        if not changes:
            return self
        return dataclasses.replace(self, **changes)

    def validate(self) -> None:
        if not isinstance(self.catalogs, (list, tuple)) or not all(
            isinstance(name, str) for name in self.catalogs
        ):
            raise ConfigError("catalogs must be a list of filenames")
        if not self.catalogs:
            raise ConfigError("At least one catalog filename is required")
        if self.fixity and not self.portal_url:
            raise ConfigError("Fixity checking requires a portal URL")
        if self.check_workers < 1 or self.fetch_workers < 1:
            raise ConfigError("Worker counts must be at least 1")
        if self.chunk_size < 1:
            raise ConfigError("chunk_size must be positive")
        if self.fetch_filter:
            try:
                re.compile(self.fetch_filter)
            except re.error as e:
                raise ConfigError(f"Invalid fetch filter {self.fetch_filter!r}: {e}") from e

    def should_fetch(self, physical_path: str) -> bool:
        """Apply the fetch filter to a resolved physical path."""
        if self._pattern is None:
            return True
        return self._pattern.search(physical_path) is not None
