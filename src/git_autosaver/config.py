import logging
import re
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, ClassVar

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_FILE_PATTERN,
    DEFAULT_REMOTE,
    LOCAL_CONFIG_NAME,
    PYPROJECT_SECTION,
)

logger = logging.getLogger(APP_NAME)


def _scaled(value: str, pattern: str, units: dict[str, int], kind: str) -> int:
    match = re.match(pattern, str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid {kind} format '{value}'")
    return int(float(match.group(1)) * units[match.group(2) or ""])


def parse_size(value: int | str) -> int:
    """Turns '5mb', '512k' or a plain byte count into bytes."""
    if isinstance(value, int):
        return value
    kib = 1024
    units = {"k": kib, "kb": kib, "m": kib**2, "mb": kib**2, "g": kib**3, "gb": kib**3}
    return _scaled(value, r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", units, "size")


def parse_time(value: int | str) -> int:
    """Turns '30s', '2min' or '1hr' into whole seconds."""
    if isinstance(value, int):
        return value
    units = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return _scaled(value, r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", units, "time")


def parse_millis(value: int | str) -> int:
    """Turns '500ms', '1.5s' or a bare number into milliseconds.

    Bare numbers are already milliseconds. Negative delays are rejected.
    """
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Invalid duration '{value}'")
        return value
    units = {"": 1, "ms": 1, "s": 1000, "sec": 1000}
    return _scaled(value, r"^(\d+(?:\.\d+)?)\s*(ms|s|sec)?$", units, "duration")


def _check_pattern(value: str) -> str:
    re.compile(value)
    return value


# Keys whose TOML value needs conversion or validation before use.
_PARSERS: dict[str, Callable[[Any], Any]] = {
    "max_log_size": parse_size,
    "command_timeout": parse_time,
    "debounce_ms": parse_millis,
    "file_pattern": _check_pattern,
}


@dataclass
class CoreConfig:
    """What gets saved, and to which remote.

    Attributes:
        enabled (bool): Whether saves are admitted at all when a session starts.
        file_pattern (str): Regex matched against the file name of each save.
        remote_name (str): The git remote whose URL the push fallback rewrites.
    """

    enabled: bool = True
    file_pattern: str = DEFAULT_FILE_PATTERN
    remote_name: str = DEFAULT_REMOTE


@dataclass
class PipelineConfig:
    """Settings for the add, commit and push stages.

    Attributes:
        git_add (bool): Run the staging step.
        git_commit (bool): Run the commit step.
        git_push (bool): Run the publish step.
        command_timeout (int): Seconds a single git command may run (0 disables).
        publish_after_noop_commit (bool): Push even when the commit had nothing new.
    """

    git_add: bool = True
    git_commit: bool = True
    git_push: bool = True
    command_timeout: int = 60
    publish_after_noop_commit: bool = False


@dataclass
class DebounceConfig:
    """Trigger coalescing settings.

    Attributes:
        debounce_ms (int): Quiet period before a save is admitted (0 is immediate).
        per_path (bool): Keep one timer per file instead of one shared timer.
    """

    debounce_ms: int = 1000
    per_path: bool = False


@dataclass
class NotifyConfig:
    """User-facing notification settings.

    Attributes:
        silent (bool): Suppress console and desktop messages (the log is kept).
        desktop (bool): Mirror messages as desktop notifications.
        on_success (bool): Announce successful pushes, not only failures.
    """

    silent: bool = False
    desktop: bool = False
    on_success: bool = False


@dataclass
class LimitsConfig:
    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Every settings section of one autosave session.

    Attributes:
        core (CoreConfig): File filter and remote selection.
        pipeline (PipelineConfig): Git stage settings.
        debounce (DebounceConfig): Trigger coalescing settings.
        notify (NotifyConfig): Notification settings.
        limits (LimitsConfig): Log rotation threshold.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    debounce: DebounceConfig = field(default_factory=DebounceConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    # The user-wide file is read once per process.
    _global_cache: ClassVar["Config | None"] = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Builds the settings that apply to one repository.

        Built-in defaults are overlaid with the user-wide config file, then with
        `autosaver.toml` (or `[tool.autosaver]` in `pyproject.toml`) found in
        `repo_path`.

        Args:
            repo_path (Path | None): Repository root holding the local overrides.

        Returns:
            Config: A fresh instance the caller may mutate freely.
        """
        if cls._global_cache is None:
            base = cls()
            if CONFIG_FILE.exists():
                base._merge_from_file(CONFIG_FILE)
            cls._global_cache = base

        # Copy every section so local overrides never leak into the cache.
        instance = cls(
            **{
                f.name: replace(getattr(cls._global_cache, f.name))
                for f in fields(cls)
            }
        )

        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"
            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section=PYPROJECT_SECTION)

        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Overlays the sections found in a TOML file onto this instance.

        Args:
            path (Path): File to read.
            section (str | None): Dotted table holding the settings, if nested.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return

        for key in (section or "").split("."):
            if key:
                data = data.get(key, {})

        for f in fields(self):
            table = data.get(f.name)
            if isinstance(table, dict):
                current = getattr(self, f.name)
                setattr(self, f.name, _apply_section(f.name, current, table))


def _apply_section(name: str, current: Any, updates: dict) -> Any:
    """Returns a copy of one section with the valid entries of `updates` applied."""
    known = {f.name for f in fields(current)}

    unknown = sorted(set(updates) - known)
    if unknown:
        logger.warning(f"Unknown config keys in [{name}]: {', '.join(unknown)}. Ignoring.")

    accepted = {}
    for key, value in updates.items():
        if key not in known:
            continue
        parser = _PARSERS.get(key)
        try:
            accepted[key] = parser(value) if parser else value
        except (ValueError, TypeError, re.error) as e:
            logger.warning(
                f"Config error in [{name}].{key}: {e}. Falling back to default."
            )

    return replace(current, **accepted)
