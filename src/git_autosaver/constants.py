import os
from pathlib import Path

"""Names, locations and git output phrases shared across git-autosaver.

State lives under $XDG_STATE_HOME (falling back to ~/.local/state) and user
settings under ~/.config/git-autosaver.
"""

# --- Identity ---
APP_NAME = "git-autosaver"
"""str: Logger name and state directory name."""

LOCAL_CONFIG_NAME = "autosaver.toml"
"""str: The per-repository configuration file name."""

PYPROJECT_SECTION = "tool.autosaver"
"""str: The pyproject.toml table holding per-repository configuration."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-autosaver"
"""Path: The directory for runtime state data (logs)."""

# Log handlers open files here at startup.
STATE_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = STATE_DIR / "autosaver.log"
"""Path: Rotating log written by the `listen` daemon."""

# --- Settings ---
CONFIG_DIR: Path = Path.home() / ".config/git-autosaver"
"""Path: Directory holding the user-wide settings."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: User-wide settings, overridden per repository."""

# --- Git ---
DEFAULT_FILE_PATTERN = r"\.md$"
"""str: Regex matched against the file name to decide whether a save is tracked."""

DEFAULT_REMOTE = "origin"
"""str: The remote whose URL is swapped when a push is rejected."""

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
"""str: strftime format of the commit message assigned at admission."""

NOTHING_TO_COMMIT_PHRASES = ("nothing to commit", "no changes added to commit")
"""tuple[str, ...]: Commit output fragments meaning the index had nothing new."""

UP_TO_DATE_PHRASES = ("up to date", "up-to-date")
"""tuple[str, ...]: Output fragments meaning there was nothing to commit or push."""

NON_INTERACTIVE_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_SSH_COMMAND": "ssh -o BatchMode=yes",
}
"""dict[str, str]: Environment overrides that make credential prompts fail fast."""
