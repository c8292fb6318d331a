"""Log viewer screen."""

from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import Button, RichLog, Select, Static
from textual.worker import Worker, WorkerState

from ..base_screen import BaseScreen
from ...stacks import get_available_stacks


class LogViewerScreen(BaseScreen):
    """Screen for viewing compose service logs."""

    BINDINGS = [
        ("r", "refresh_logs", "Refresh"),
    ]

    def compose(self) -> ComposeResult:
        """Compose the log viewer screen."""
        sources = [(info.display_name, name) for name, info in get_available_stacks().items()]
        yield Container(
            Static("Log Viewer", classes="title"),
            Horizontal(
                Select(sources, id="log-source", value="n8n", allow_blank=False),
                Select(
                    [
                        ("50 lines", "50"),
                        ("100 lines", "100"),
                        ("200 lines", "200"),
                        ("500 lines", "500"),
                    ],
                    id="log-lines",
                    value="100",
                    allow_blank=False,
                ),
                Button("Refresh", id="refresh", variant="primary"),
                Button("Clear", id="clear", variant="warning"),
                id="controls",
            ),
            Container(
                RichLog(id="output-log", highlight=True, markup=True),
                id="log-container",
            ),
            id="main-content",
        )

    def on_mount(self) -> None:
        """Initialize the screen."""
        self.action_refresh_logs()

    def action_refresh_logs(self) -> None:
        """Load logs in a worker so the UI stays responsive."""
        service = self.query_one("#log-source", Select).value
        lines = int(self.query_one("#log-lines", Select).value)
        log_output = self.query_one("#output-log", RichLog)
        log_output.clear()
        self.log_message(f"Loading logs for {service}...")
        self.run_worker(
            lambda: self.make_provisioner().logs(service=service, tail=lines),
            name="logs",
            thread=True,
            exclusive=True,
            exit_on_error=False,
        )

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Show fetched logs."""
        if event.worker.name != "logs" or event.state not in (WorkerState.SUCCESS, WorkerState.ERROR):
            return
        log_output = self.query_one("#output-log", RichLog)
        log_output.clear()
        if event.state == WorkerState.ERROR:
            self.log_message(f"Error loading logs: {event.worker.error}", "error")
        else:
            self.log_message(event.worker.result or "No logs available")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button presses."""
        if event.button.id == "refresh":
            self.action_refresh_logs()
        elif event.button.id == "clear":
            self.query_one("#output-log", RichLog).clear()

    def on_select_changed(self, event: Select.Changed) -> None:
        """Handle select changes."""
        if event.select.id == "log-source" and self.is_mounted:
            self.action_refresh_logs()
