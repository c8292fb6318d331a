"""systemd unit generation and management."""

import configparser
import shlex

from .config_loader import ProvisionConfig
from .errors import TemplateError
from .host import HostRunner


DOCKER_BIN = "/usr/bin/docker"


def render_unit(config: ProvisionConfig) -> str:
    """Render the oneshot unit that brings the compose stack up at boot."""
    unit = f"""[Unit]
Description=n8n Workflow Automation Stack (Docker)
After=docker.service network.target
Requires=docker.service

[Service]
Type=oneshot
RemainAfterExit=true
WorkingDirectory={config.data_dir}
ExecStart={DOCKER_BIN} compose up -d
ExecStop={DOCKER_BIN} compose down
TimeoutStartSec=0

[Install]
WantedBy=multi-user.target
"""
    validate_unit(unit, config)
    return unit


def validate_unit(content: str, config: ProvisionConfig) -> None:
    """Check a rendered unit before it is written."""
    parser = configparser.ConfigParser(interpolation=None, strict=True)
    parser.optionxform = str
    try:
        parser.read_string(content)
    except configparser.Error as e:
        raise TemplateError(f"Unit file does not parse: {e}") from e

    for section in ("Unit", "Service", "Install"):
        if not parser.has_section(section):
            raise TemplateError(f"Unit file is missing [{section}]")

    if parser.get("Service", "WorkingDirectory", fallback="") != config.data_dir:
        raise TemplateError("Unit WorkingDirectory does not match the data directory")
    if "docker.service" not in parser.get("Unit", "Requires", fallback=""):
        raise TemplateError("Unit must require docker.service")
    if parser.get("Install", "WantedBy", fallback="") != "multi-user.target":
        raise TemplateError("Unit must be wanted by multi-user.target")
    for key in ("ExecStart", "ExecStop"):
        if not parser.get("Service", key, fallback=""):
            raise TemplateError(f"Unit is missing {key}")


class SystemdManager:
    """Installs and enables systemd units."""

    def __init__(self, runner: HostRunner):
        self.runner = runner

    def install_unit(self, path: str, content: str) -> tuple[bool, str]:
        """Write (overwrite) a unit file."""
        result = self.runner.write_file(path, content, mode="644")
        if result.success:
            return True, f"Wrote {path}"
        return False, result.output

    def daemon_reload(self) -> tuple[bool, str]:
        result = self.runner.run_command("systemctl daemon-reload")
        if result.success:
            return True, "systemd reloaded"
        return False, result.output

    def enable(self, unit: str) -> tuple[bool, str]:
        result = self.runner.run_command(f"systemctl enable {shlex.quote(unit)}")
        if result.success:
            return True, f"{unit} enabled"
        return False, result.output

    def is_enabled(self, unit: str) -> bool:
        result = self.runner.run_command(f"systemctl is-enabled {shlex.quote(unit)}", sudo=False)
        return result.success and result.stdout.strip() == "enabled"

    def is_active(self, unit: str) -> bool:
        result = self.runner.run_command(f"systemctl is-active {shlex.quote(unit)}", sudo=False)
        return result.success and result.stdout.strip() == "active"
