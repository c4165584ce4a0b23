"""Scan options and the optional per-project ``.railscan.yml`` file."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple

import yaml

from .matcher import DEFAULT_WINDOW
from .rules import Category
from .severity import Severity
from .suppression import PathSuppression
from .utils.fileio import read_yaml_file

PROJECT_CONFIG_FILENAME = ".railscan.yml"
DEFAULT_MAX_FILE_SIZE = 1_000_000
DEFAULT_FILE_TIMEOUT = 5.0


class ConfigError(ValueError):
    pass


def default_concurrency() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class ScanOptions:
    """Tunables for one scan run."""

    concurrency: int = field(default_factory=default_concurrency)
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    file_timeout: Optional[float] = DEFAULT_FILE_TIMEOUT
    window: int = DEFAULT_WINDOW
    ignore: Tuple[str, ...] = ()
    categories: Tuple[Category, ...] = ()
    fail_on: Severity = Severity.LOW

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ConfigError("concurrency must be at least 1")
        if self.max_file_size < 1:
            raise ConfigError("max_file_size must be positive")
        if self.file_timeout is not None and self.file_timeout <= 0:
            raise ConfigError("file_timeout must be positive")
        if self.window < 1:
            raise ConfigError("window must be at least 1")
        try:
            object.__setattr__(self, "fail_on", Severity.parse(self.fail_on))
        except ValueError as exc:
            raise ConfigError(f"fail_on: {exc}") from exc


@dataclass(frozen=True)
class ProjectConfig:
    """Traversal ignores and path suppressions declared by the project."""

    ignore: Tuple[str, ...] = ()
    suppress: Tuple[PathSuppression, ...] = ()


def load_project_config(path: Path, required: bool = False) -> ProjectConfig:
    """Load ``.railscan.yml``.

    A missing file yields an empty config unless ``required`` is set.
    """

    if not path.exists():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        return ProjectConfig()
    try:
        raw = read_yaml_file(path)
    except (yaml.YAMLError, OSError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    return parse_project_config(raw, origin=str(path))


def parse_project_config(raw: Any, origin: str = "<config>") -> ProjectConfig:
    if raw is None:
        return ProjectConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"{origin}: config must be a mapping")
    unknown = sorted(set(raw) - {"ignore", "suppress"})
    if unknown:
        raise ConfigError(f"{origin}: unknown keys: {', '.join(map(str, unknown))}")

    ignore = _ensure_string_list(raw.get("ignore"), f"{origin}: 'ignore'")

    suppress: List[PathSuppression] = []
    entries = raw.get("suppress") or []
    if not isinstance(entries, list):
        raise ConfigError(f"{origin}: 'suppress' must be a list")
    for index, entry in enumerate(entries):
        if isinstance(entry, str):
            entry = {"path": entry}
        if not isinstance(entry, dict) or not str(entry.get("path") or "").strip():
            raise ConfigError(f"{origin}: suppress[{index}] needs a 'path' glob")
        extra = sorted(set(entry) - {"path", "reason"})
        if extra:
            raise ConfigError(f"{origin}: suppress[{index}] has unknown keys: {', '.join(map(str, extra))}")
        suppress.append(PathSuppression(glob=str(entry["path"]).strip(), reason=str(entry.get("reason") or "").strip()))

    return ProjectConfig(ignore=tuple(ignore), suppress=tuple(suppress))


def _ensure_string_list(value: object, what: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"{what} must be a list of strings")
    return [str(item) for item in value]
