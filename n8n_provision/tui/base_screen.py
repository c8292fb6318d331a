"""Base screen class with common functionality."""

from typing import Optional

from textual.screen import Screen
from textual.widgets import RichLog

from ..core.config_loader import ProvisionConfig
from ..core.provisioner import Provisioner


LEVEL_STYLES = {
    "error": "red",
    "success": "green",
    "warning": "yellow",
}


class BaseScreen(Screen):
    """Base screen with a shared provisioner and log output."""

    LOG_WIDGET_ID = "#output-log"

    @property
    def provision_config(self) -> ProvisionConfig:
        return self.app.provision_config

    def make_provisioner(self, rotate_key: bool = False) -> Provisioner:
        return Provisioner(self.provision_config, self.app.runner, rotate_key=rotate_key)

    def log_message(self, message: str, level: Optional[str] = None) -> None:
        """Append a line to the screen's log widget.

        Args:
            message: The message to display
            level: One of "error", "success", "warning" or None for plain text
        """
        log = self.query_one(self.LOG_WIDGET_ID, RichLog)
        # Escape brackets to prevent Rich markup interpretation
        safe_message = message.replace("[", "\\[")
        style = LEVEL_STYLES.get(level or "")
        if style:
            log.write(f"[{style}]{safe_message}[/{style}]")
        else:
            log.write(safe_message)
