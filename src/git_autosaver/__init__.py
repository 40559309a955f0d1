"""Git Autosaver: commit and push a file every time your editor saves it.

This package provides the debounced save queue, the add/commit/push pipeline
with HTTPS/SSH push fallback, and the command-line and stdin integrations
that editors drive.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    errors,
    git_wrapper,
    notifier,
    pipeline,
    remote,
    save_queue,
    scheduler,
    session,
    system,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "errors",
    "git_wrapper",
    "notifier",
    "pipeline",
    "remote",
    "save_queue",
    "scheduler",
    "session",
    "system",
]
