import logging
import subprocess
import sys

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class SystemStrategy:
    """Desktop notification backend for the current platform.

    Subclasses only describe the command that raises a notification; running it
    and tolerating a missing binary is shared here. The base class itself is the
    no-op backend used on platforms without a known notifier.
    """

    def command(self, title: str, message: str) -> list[str] | None:
        """Builds the argv that displays a notification.

        Args:
            title (str): Headline shown by the desktop.
            message (str): Body text, usually "<file>: <reason>".

        Returns:
            list[str] | None: The command to run, or None when unsupported.
        """
        return None

    def notify(self, title: str, message: str) -> None:
        argv = self.command(title, message)
        if argv is None:
            return
        try:
            subprocess.run(argv, stderr=subprocess.DEVNULL, check=False)
        except OSError as e:
            logger.debug(f"NOTIFY SKIPPED: {argv[0]} unavailable ({e})")


class MacOSStrategy(SystemStrategy):
    def command(self, title: str, message: str) -> list[str] | None:
        # AppleScript string literals cannot contain bare double quotes.
        body = message.replace('"', "'")
        heading = title.replace('"', "'")
        return [
            "osascript",
            "-e",
            f'display notification "{body}" with title "{heading}"',
        ]


class LinuxStrategy(SystemStrategy):
    def command(self, title: str, message: str) -> list[str] | None:
        return ["notify-send", title, message]


def get_system() -> SystemStrategy:
    """Returns the notification backend matching `sys.platform`."""
    if sys.platform == "darwin":
        return MacOSStrategy()
    if sys.platform.startswith("linux"):
        return LinuxStrategy()
    return SystemStrategy()
