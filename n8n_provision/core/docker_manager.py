"""Docker and Docker Compose management on the target host."""

import logging
import shlex
from dataclasses import dataclass
from typing import Optional

from .host import HostRunner


logger = logging.getLogger(__name__)

DOCKER_INSTALL_URL = "https://get.docker.com"
COMPOSE_PS_FORMAT = "{{.Name}}|{{.Image}}|{{.Status}}|{{.Ports}}"


@dataclass
class ContainerStatus:
    """Status of a Docker container."""
    name: str
    image: str
    status: str
    ports: str
    running: bool


def parse_container_lines(output: str) -> list[ContainerStatus]:
    """Parse ``Name|Image|Status|Ports`` lines into container statuses."""
    containers = []
    for line in output.split('\n'):
        if '|' not in line:
            continue
        parts = line.split('|')
        if len(parts) >= 4:
            running = "Up" in parts[2] or "running" in parts[2].lower()
            containers.append(ContainerStatus(
                name=parts[0],
                image=parts[1],
                status=parts[2],
                ports=parts[3],
                running=running
            ))
    return containers


class DockerManager:
    """Manages Docker operations on the target host."""

    def __init__(self, runner: HostRunner):
        """Initialize Docker manager."""
        self.runner = runner

    def is_docker_installed(self) -> bool:
        """Check if the docker command is available (presence only, not version)."""
        return self.runner.command_exists("docker")

    def is_compose_installed(self) -> bool:
        """Check if the Docker Compose v2 plugin answers."""
        result = self.runner.run_command("docker compose version")
        return result.success

    def get_docker_version(self) -> Optional[str]:
        """Get Docker version on the host."""
        result = self.runner.run_command("docker --version")
        if result.success:
            return result.stdout
        return None

    def install_docker(self) -> tuple[bool, str]:
        """Install Docker using the official convenience script."""
        commands = [
            f"curl -fsSL {DOCKER_INSTALL_URL} -o /tmp/get-docker.sh",
            "sh /tmp/get-docker.sh",
            "rm -f /tmp/get-docker.sh",
        ]

        for cmd in commands:
            result = self.runner.run_command(cmd)
            if not result.success:
                return False, f"Failed at: {cmd}\n{result.output}"

        return True, "Docker installed successfully"

    def install_compose_plugin(self) -> tuple[bool, str]:
        """Install the docker-compose-plugin package."""
        result = self.runner.run_command(
            "DEBIAN_FRONTEND=noninteractive apt-get install -y docker-compose-plugin"
        )
        if result.success:
            return True, "Docker Compose plugin installed"
        return False, result.output

    def _compose(self, stack_path: str, args: str):
        return self.runner.run_command(f"cd {shlex.quote(stack_path)} && docker compose {args}")

    def compose_up(self, stack_path: str, detach: bool = True) -> tuple[bool, str]:
        """Run docker compose up for a stack."""
        result = self._compose(stack_path, "up -d" if detach else "up")
        if result.success:
            return True, result.stdout or result.stderr
        return False, result.output

    def compose_down(self, stack_path: str, remove_volumes: bool = False) -> tuple[bool, str]:
        """Run docker compose down for a stack."""
        result = self._compose(stack_path, "down -v" if remove_volumes else "down")
        if result.success:
            return True, result.stdout or result.stderr
        return False, result.output

    def compose_pull(self, stack_path: str) -> tuple[bool, str]:
        """Pull latest images for a stack."""
        result = self._compose(stack_path, "pull")
        if result.success:
            return True, result.stdout or result.stderr
        return False, result.output

    def compose_restart(self, stack_path: str, service: Optional[str] = None) -> tuple[bool, str]:
        """Restart a stack or one of its services."""
        args = "restart"
        if service:
            args += f" {shlex.quote(service)}"
        result = self._compose(stack_path, args)
        if result.success:
            return True, f"Restarted {service or 'stack'}"
        return False, result.output

    def compose_logs(
        self,
        stack_path: str,
        tail: int = 100,
        service: Optional[str] = None
    ) -> str:
        """Get logs from a stack."""
        args = f"logs --no-color --tail={int(tail)}"
        if service:
            args += f" {shlex.quote(service)}"

        result = self._compose(stack_path, args)
        return result.stdout if result.success else result.stderr

    def compose_ps(self, stack_path: str) -> list[ContainerStatus]:
        """Get container status for a stack."""
        result = self._compose(stack_path, f"ps -a --format {shlex.quote(COMPOSE_PS_FORMAT)}")
        if result.success and result.stdout:
            return parse_container_lines(result.stdout)
        return []
