"""Convergence of a host towards the configured n8n stack.

The provisioner turns a :class:`ProvisionConfig` into an ordered list of
steps. Guarded steps carry a ``check`` that reports whether the host is
already in the desired state; steps without one are re-applied on every
run (directory ownership, generated files, firewall rules, stack start,
unit enablement). The first failing step aborts the run with a
:class:`ProvisionError`; nothing is rolled back.
"""

import datetime
import logging
import posixpath
import re
import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .accounts import AccountManager
from .config_loader import ProvisionConfig
from .credentials import SecretStore, StackSecrets
from .docker_manager import ContainerStatus, DockerManager
from .errors import ProvisionError
from .firewall import FirewallStatus, UfwManager
from .host import HostRunner
from .packages import AptManager
from .systemd import SystemdManager, render_unit
from ..stacks import ComposeRenderer, StackConfig


logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"
BACKUP_IMAGE = "alpine:3"


class StepStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    PLANNED = "planned"
    FAILED = "failed"


@dataclass
class Step:
    """One unit of desired state."""
    name: str
    apply: Callable[[], tuple[bool, str]]
    check: Optional[Callable[[], bool]] = None  # True when nothing needs doing

    @property
    def always(self) -> bool:
        return self.check is None


@dataclass
class StepResult:
    name: str
    status: StepStatus
    message: str = ""


@dataclass
class ProvisionReport:
    """Outcome of a provisioning run or plan."""
    config: ProvisionConfig
    results: list[StepResult] = field(default_factory=list)
    secrets: Optional[StackSecrets] = None
    dry_run: bool = False

    @property
    def changed(self) -> list[StepResult]:
        return [r for r in self.results if r.status == StepStatus.APPLIED]

    def summary(self) -> str:
        """Final summary printed after a successful run."""
        config = self.config
        project = shlex.quote(config.data_dir)
        lines = [
            "n8n setup complete!",
            "--------------------------------------------",
            f"Access: https://{config.domain}",
        ]
        if config.basic_auth.enabled:
            login = f"Login user: {config.basic_auth.user}"
            if self.secrets and self.secrets.password_created:
                login += f" / generated password: {self.secrets.basic_auth_password}"
            else:
                login += f" (password in {config.env_path})"
            lines.append(login)
        lines += [
            f"Data directory: {config.data_dir}",
            f"Autostart enabled: systemd service '{config.unit_name}'",
            "",
            "To manage the stack manually:",
            f"  cd {project}",
            "  sudo docker compose logs -f           # View logs",
            "  sudo docker compose restart n8n       # Restart n8n",
            "  sudo docker compose pull && sudo docker compose up -d   # Update",
            "",
            "To back up data:",
            "  n8n-provision backup --dest ~/n8n-backups",
            "",
            "REMINDERS:",
            f"  - Ensure the DNS A record for {config.domain} points to this server",
            f"  - Keep {config.env_path}: it holds the n8n encryption key",
            "  - Check HTTPS status with: sudo docker compose logs traefik",
        ]
        return "\n".join(lines)


@dataclass
class StackReport:
    """Current state of a provisioned host."""
    containers: list[ContainerStatus]
    firewall: FirewallStatus
    unit_enabled: bool
    unit_active: bool

    @property
    def running(self) -> bool:
        return bool(self.containers) and all(c.running for c in self.containers)


def compose_project_name(data_dir: str) -> str:
    """Project name docker compose derives from the working directory."""
    return re.sub(r"[^a-z0-9_-]", "", posixpath.basename(data_dir.rstrip("/")).lower())


class Provisioner:
    """Reconciles the host with the desired n8n stack."""

    def __init__(
        self,
        config: ProvisionConfig,
        runner: HostRunner,
        rotate_key: bool = False,
    ):
        self.config = config
        self.runner = runner
        self.rotate_key = rotate_key
        self.apt = AptManager(runner)
        self.accounts = AccountManager(runner)
        self.docker = DockerManager(runner)
        self.firewall = UfwManager(runner)
        self.systemd = SystemdManager(runner)
        self.secret_store = SecretStore(runner, config)
        self.renderer = ComposeRenderer()
        self.secrets: Optional[StackSecrets] = None

    # -- rendering ---------------------------------------------------------

    def resolve_timezone(self) -> str:
        """Configured timezone, else the host's /etc/timezone, else UTC."""
        if self.config.timezone:
            return self.config.timezone
        content = self.runner.read_file("/etc/timezone")
        if content and content.strip():
            return content.strip().splitlines()[0]
        return DEFAULT_TIMEZONE

    def render_compose(self) -> str:
        return self.renderer.render(StackConfig(settings=self.config, timezone=self.resolve_timezone()))

    def render_unit(self) -> str:
        return render_unit(self.config)

    # -- step actions ------------------------------------------------------

    def _install_prerequisites(self) -> tuple[bool, str]:
        missing = self.apt.missing(self.config.prerequisite_packages)
        return self.apt.install(missing, update=not self.config.upgrade_system)

    def _create_user(self) -> tuple[bool, str]:
        return self.accounts.create_user(self.config.service_user)

    def _prepare_data_dir(self) -> tuple[bool, str]:
        return self.accounts.ensure_directory(self.config.data_dir, self.config.service_user)

    def _store_secrets(self) -> tuple[bool, str]:
        self.secrets = self.secret_store.load_or_create(rotate=self.rotate_key)
        ok, msg = self.secret_store.write(self.secrets)
        if not ok:
            return False, msg
        state = "generated" if self.secrets.key_created else "reused"
        return True, f"Encryption key {state}; {msg}"

    def _write_compose(self) -> tuple[bool, str]:
        content = self.render_compose()
        result = self.runner.write_file(self.config.compose_path, content)
        if result.success:
            return True, f"Wrote {self.config.compose_path}"
        return False, result.output

    def _configure_firewall(self) -> tuple[bool, str]:
        return self.firewall.apply(self.config.firewall_ports)

    def _launch_stack(self) -> tuple[bool, str]:
        ok, output = self.docker.compose_up(self.config.data_dir)
        if ok:
            return True, "Stack started"
        return False, output

    def _install_unit(self) -> tuple[bool, str]:
        ok, msg = self.systemd.install_unit(self.config.unit_path, self.render_unit())
        if not ok:
            return False, msg
        return self.systemd.daemon_reload()

    def _enable_unit(self) -> tuple[bool, str]:
        return self.systemd.enable(f"{self.config.unit_name}.service")

    def build_steps(self) -> list[Step]:
        """Ordered desired state for the host."""
        config = self.config
        steps = []
        if config.upgrade_system:
            steps.append(Step("Update system packages", self.apt.update_and_upgrade))
        steps += [
            Step(
                "Install prerequisites",
                self._install_prerequisites,
                check=lambda: not self.apt.missing(config.prerequisite_packages),
            ),
            Step("Install Docker", self.docker.install_docker, check=self.docker.is_docker_installed),
            Step(
                "Install Docker Compose plugin",
                self.docker.install_compose_plugin,
                check=self.docker.is_compose_installed,
            ),
            Step(
                f"Create user '{config.service_user}'",
                self._create_user,
                check=lambda: self.accounts.user_exists(config.service_user),
            ),
            Step(f"Prepare {config.data_dir}", self._prepare_data_dir),
            Step("Store secrets", self._store_secrets),
            Step("Write docker-compose.yml", self._write_compose),
            Step("Configure firewall", self._configure_firewall),
            Step("Launch n8n + Traefik stack", self._launch_stack),
            Step(f"Install {config.unit_name}.service", self._install_unit),
            Step("Enable autostart", self._enable_unit),
        ]
        return steps

    # -- runs --------------------------------------------------------------

    def run(self, callback: Optional[Callable[[str], None]] = None) -> ProvisionReport:
        """Converge the host, aborting on the first failing step."""
        def log(msg: str):
            logger.info(msg)
            if callback:
                callback(msg)

        report = ProvisionReport(config=self.config)
        log(f"Provisioning n8n for {self.config.domain} on {self.runner.name}")

        for step in self.build_steps():
            try:
                if step.check is not None and step.check():
                    report.results.append(StepResult(step.name, StepStatus.SKIPPED, "already satisfied"))
                    log(f"✓ {step.name} (already satisfied)")
                    continue

                log(f"→ {step.name}...")
                ok, message = step.apply()
            except ProvisionError:
                raise
            except Exception as e:
                report.results.append(StepResult(step.name, StepStatus.FAILED, str(e)))
                log(f"✗ {step.name} failed")
                raise ProvisionError(step.name, str(e)) from e

            if not ok:
                report.results.append(StepResult(step.name, StepStatus.FAILED, message))
                log(f"✗ {step.name} failed")
                raise ProvisionError(step.name, "command failed", output=message)

            report.results.append(StepResult(step.name, StepStatus.APPLIED, message))
            log(f"✓ {step.name}")

        report.secrets = self.secrets
        return report

    def plan(self, callback: Optional[Callable[[str], None]] = None) -> ProvisionReport:
        """Evaluate the checks without changing the host."""
        report = ProvisionReport(config=self.config, dry_run=True)
        for step in self.build_steps():
            try:
                satisfied = step.check is not None and step.check()
            except Exception as e:
                report.results.append(StepResult(step.name, StepStatus.FAILED, str(e)))
                raise ProvisionError(step.name, f"check failed: {e}") from e

            if satisfied:
                result = StepResult(step.name, StepStatus.SKIPPED, "already satisfied")
            elif step.always:
                result = StepResult(step.name, StepStatus.PLANNED, "applied on every run")
            else:
                result = StepResult(step.name, StepStatus.PLANNED, "missing")
            report.results.append(result)
            if callback:
                callback(f"{result.status.value:>8}  {step.name}")
        return report

    # -- maintenance -------------------------------------------------------

    def status(self) -> StackReport:
        unit = f"{self.config.unit_name}.service"
        return StackReport(
            containers=self.docker.compose_ps(self.config.data_dir),
            firewall=self.firewall.status(),
            unit_enabled=self.systemd.is_enabled(unit),
            unit_active=self.systemd.is_active(unit),
        )

    def logs(self, service: Optional[str] = None, tail: int = 100) -> str:
        return self.docker.compose_logs(self.config.data_dir, tail=tail, service=service)

    def update(self) -> tuple[bool, str]:
        """Pull newer images and recreate the containers."""
        ok, output = self.docker.compose_pull(self.config.data_dir)
        if not ok:
            return False, f"Pull failed: {output}"
        return self.docker.compose_up(self.config.data_dir)

    def teardown(self, remove_volumes: bool = False) -> tuple[bool, str]:
        return self.docker.compose_down(self.config.data_dir, remove_volumes=remove_volumes)

    def backup(self, dest_dir: str, date: Optional[datetime.date] = None) -> tuple[bool, list[str]]:
        """Archive the data directory and the n8n data volume into dest_dir.

        Both archives hold secrets (.env, ACME keys, the n8n database), so
        the destination is created 0700 and the archives end up 0600.
        dest_dir must be absolute; docker reads a relative bind source as a
        volume name.
        """
        if not posixpath.isabs(dest_dir):
            raise ProvisionError("Backup", f"destination must be an absolute path: {dest_dir}")
        dest_dir = posixpath.normpath(dest_dir)
        stamp = (date or datetime.date.today()).isoformat()
        config_archive = f"{dest_dir}/n8n-config-{stamp}.tar.gz"
        data_archive = f"{dest_dir}/n8n-data-{stamp}.tar.gz"
        volume = f"{compose_project_name(self.config.data_dir)}_n8n_data"

        commands = [
            f"mkdir -p -m 700 {shlex.quote(dest_dir)} && chmod 700 {shlex.quote(dest_dir)}",
            f"umask 077 && tar czf {shlex.quote(config_archive)} -C {shlex.quote(self.config.data_dir)} .",
            (
                f"docker run --rm -v {shlex.quote(volume)}:/data:ro "
                f"-v {shlex.quote(dest_dir)}:/backup {BACKUP_IMAGE} "
                f"sh -c 'umask 077; tar czf /backup/{posixpath.basename(data_archive)} -C /data .'"
            ),
            # tar keeps the mode of an archive that already existed
            f"chmod 600 {shlex.quote(config_archive)} {shlex.quote(data_archive)}",
        ]
        for cmd in commands:
            result = self.runner.run_command(cmd)
            if not result.success:
                logger.error("Backup failed at: %s\n%s", cmd, result.output)
                return False, []
        return True, [config_archive, data_archive]
