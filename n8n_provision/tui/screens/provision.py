"""Provisioning screen."""

from textual.app import ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Button, Checkbox, RichLog, Static
from textual.worker import Worker, WorkerState

from ..base_screen import BaseScreen
from ...core.errors import ProvisionError
from ...core.provisioner import ProvisionReport, StepStatus


class ProvisionScreen(BaseScreen):
    """Shows the desired state and runs plan/provision in a worker thread."""

    BINDINGS = [
        ("p", "plan", "Plan"),
        ("r", "provision", "Provision"),
    ]

    def __init__(self):
        super().__init__()
        self._busy = False

    def compose(self) -> ComposeResult:
        """Compose the provisioning screen."""
        yield Container(
            Static("n8n Provisioning", classes="title"),
            Vertical(
                Static("Desired State", classes="title"),
                Static("", id="config-overview"),
                classes="box",
            ),
            Horizontal(
                Button("Plan", id="plan", variant="primary"),
                Button("Provision", id="provision", variant="success"),
                Checkbox("Rotate encryption key", id="rotate-key"),
                id="action-buttons",
            ),
            RichLog(id="output-log", highlight=True, markup=True),
            id="main-content",
        )

    def on_mount(self) -> None:
        """Initialize the screen."""
        config = self.provision_config
        self.query_one("#config-overview", Static).update(
            f"Domain: [bold]{config.domain}[/bold]\n"
            f"Target: {config.target.host}\n"
            f"Service user: {config.service_user}\n"
            f"Data directory: {config.data_dir}\n"
            f"n8n image: {config.n8n_image}\n"
            f"Firewall ports: {', '.join(str(p) for p in config.firewall_ports)}\n"
            f"systemd unit: {config.unit_name}.service"
        )

    def _set_running(self, running: bool) -> None:
        self._busy = running
        for button_id in ("#plan", "#provision"):
            self.query_one(button_id, Button).disabled = running

    def action_plan(self) -> None:
        if self._busy:
            return
        self._set_running(True)
        self.log_message("Checking host state...")
        self.run_worker(self._plan_worker, name="plan", thread=True, exit_on_error=False)

    def action_provision(self) -> None:
        if self._busy:
            return
        rotate = self.query_one("#rotate-key", Checkbox).value
        self._set_running(True)
        self.run_worker(
            lambda: self._provision_worker(rotate),
            name="provision",
            thread=True,
            exit_on_error=False,
        )

    def _callback(self, msg: str) -> None:
        self.app.call_from_thread(self.log_message, msg)

    def _plan_worker(self) -> ProvisionReport:
        """Worker to evaluate checks (runs in thread)."""
        return self.make_provisioner().plan(self._callback)

    def _provision_worker(self, rotate: bool) -> ProvisionReport:
        """Worker to converge the host (runs in thread)."""
        return self.make_provisioner(rotate_key=rotate).run(self._callback)

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker state changes."""
        if event.worker.name not in ("plan", "provision"):
            return

        if event.state == WorkerState.SUCCESS:
            self._set_running(False)
            report = event.worker.result
            if report.dry_run:
                pending = [r for r in report.results if r.status == StepStatus.PLANNED]
                self.log_message(f"{len(pending)} of {len(report.results)} steps would run", "success")
            else:
                self.log_message(report.summary(), "success")
                self.notify(f"n8n ready at https://{report.config.domain}")

        elif event.state == WorkerState.ERROR:
            self._set_running(False)
            error = event.worker.error
            if isinstance(error, ProvisionError):
                self.log_message(f"Step '{error.step}' failed: {error.message}", "error")
                if error.output:
                    self.log_message(error.output, "error")
            else:
                self.log_message(f"Error: {error}", "error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button presses."""
        if event.button.id == "plan":
            self.action_plan()
        elif event.button.id == "provision":
            self.action_provision()
