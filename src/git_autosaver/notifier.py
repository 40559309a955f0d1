import logging

from rich.console import Console
from rich.markup import escape

from .config import NotifyConfig
from .constants import APP_NAME
from .pipeline import SaveRequest
from .system import SystemStrategy, get_system

logger = logging.getLogger(APP_NAME)


class Notifier:
    """Routes terminal pipeline outcomes to the user.

    Failures are always visible unless `silent` is set; successes are quiet by
    default and only announced with `on_success`. Every outcome is logged
    regardless of these settings.

    Attributes:
        config (NotifyConfig): Visibility settings.
        console (Console): Where messages are printed.
        system (SystemStrategy): Desktop notification backend.
    """

    def __init__(
        self,
        config: NotifyConfig | None = None,
        console: Console | None = None,
        system: SystemStrategy | None = None,
    ):
        self.config = config or NotifyConfig()
        self.console = console or Console(stderr=True)
        self.system = system or get_system()

    def on_success(self, request: SaveRequest) -> None:
        message = f"Committed and pushed '{request.display_name}' at {request.timestamp}"
        logger.info(f"SUCCESS {request.display_name}: {message}")
        if self.config.silent or not self.config.on_success:
            return
        self.console.print(f"[bold green]SUCCESS:[/bold green] {escape(message)}")
        if self.config.desktop:
            self.system.notify("Autosaver", message)

    def on_error(self, request: SaveRequest, message: str) -> None:
        if self.config.silent:
            return
        self.console.print(
            f"[bold red]ERROR:[/bold red] {escape(request.display_name)}: "
            f"{escape(message)}"
        )
        if self.config.desktop:
            self.system.notify("Autosaver Failed", f"{request.display_name}: {message}")

    def warn(self, message: str) -> None:
        logger.warning(message)
        if self.config.silent:
            return
        self.console.print(f"[bold yellow]WARNING:[/bold yellow] {escape(message)}")

    def info(self, message: str) -> None:
        logger.info(message)
        if self.config.silent:
            return
        self.console.print(escape(message), style="dim")
