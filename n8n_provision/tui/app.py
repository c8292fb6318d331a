"""Main TUI application using Textual."""

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header

from ..core.config_loader import ProvisionConfig
from ..core.host import get_host_runner
from .screens.logs import LogViewerScreen
from .screens.provision import ProvisionScreen


class N8NProvisionApp(App):
    """n8n provisioning TUI application."""

    TITLE = "n8n Provision"
    SUB_TITLE = "n8n + Traefik on a single host"

    CSS = """
    Screen {
        background: $surface;
    }

    #main-content {
        height: 100%;
        padding: 1;
    }

    .box {
        border: solid $primary;
        padding: 1;
        margin: 1;
        height: auto;
    }

    .title {
        text-style: bold;
        color: $text;
        padding: 1;
    }

    Button {
        margin: 1;
    }

    Checkbox {
        margin: 1 0;
    }

    Select {
        margin: 1 0;
        width: 30;
    }

    #action-buttons, #controls {
        height: auto;
    }

    RichLog {
        height: 1fr;
        border: solid $primary;
    }

    #log-container {
        height: 1fr;
        margin: 1;
    }
    """

    BINDINGS = [
        Binding("v", "switch_screen('provision')", "Provision", show=True),
        Binding("l", "switch_screen('logs')", "Logs", show=True),
        Binding("q", "quit", "Quit", show=True),
    ]

    SCREENS = {
        "provision": ProvisionScreen,
        "logs": LogViewerScreen,
    }

    def __init__(self, config: ProvisionConfig):
        super().__init__()
        self.provision_config = config
        self.runner = get_host_runner(config.target)

    def compose(self) -> ComposeResult:
        """Compose the main application."""
        yield Header()
        yield Footer()

    def on_mount(self) -> None:
        """Called when the app is mounted."""
        self.sub_title = f"{self.provision_config.domain} on {self.provision_config.target.host}"
        self.push_screen("provision")


def run_app(config: ProvisionConfig) -> None:
    """Run the TUI application."""
    app = N8NProvisionApp(config)
    try:
        app.run()
    finally:
        app.runner.close()
