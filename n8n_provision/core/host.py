"""Command execution on the provisioned host, local or over SSH."""

import io
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from fabric import Connection
from invoke import Context
from paramiko import RSAKey, Ed25519Key, ECDSAKey
from paramiko.ssh_exception import SSHException

from .config_loader import TargetConfig


logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of a command execution."""
    stdout: str
    stderr: str
    return_code: int
    success: bool

    @classmethod
    def from_invoke_result(cls, result) -> "CommandResult":
        """Create from an invoke/fabric result object."""
        return cls(
            stdout=result.stdout.strip() if result.stdout else "",
            stderr=result.stderr.strip() if result.stderr else "",
            return_code=result.return_code,
            success=result.return_code == 0
        )

    @property
    def output(self) -> str:
        """Combined output, stderr first."""
        return "\n".join(part for part in (self.stderr, self.stdout) if part)


def _load_key(key_path: Path):
    """Load SSH private key from file."""
    key_path = key_path.expanduser()
    if not key_path.exists():
        raise FileNotFoundError(f"SSH key not found: {key_path}")

    key_content = key_path.read_text()

    for key_class in [RSAKey, Ed25519Key, ECDSAKey]:
        try:
            return key_class.from_private_key(io.StringIO(key_content))
        except SSHException:
            continue

    raise ValueError(f"Unable to load SSH key: {key_path}")


class HostRunner:
    """Runs commands on the target host.

    Wraps an ``invoke.Context`` for the local machine or a
    ``fabric.Connection`` for a remote one; both expose the same ``run``.
    """

    def __init__(self, context: Union[Context, Connection], sudo: bool = True):
        self.context = context
        self.sudo = sudo

    @property
    def name(self) -> str:
        if isinstance(self.context, Connection):
            return self.context.host
        return "localhost"

    def _wrap(self, command: str, sudo: Optional[bool]) -> str:
        use_sudo = self.sudo if sudo is None else sudo
        if use_sudo:
            return f"sudo -n sh -c {shlex.quote(command)}"
        return command

    def run_command(
        self,
        command: str,
        hide: bool = True,
        warn: bool = True,
        sudo: Optional[bool] = None,
        stdin: Optional[str] = None,
    ) -> CommandResult:
        """Execute a command and return its result."""
        logger.debug("[%s] $ %s", self.name, command)
        in_stream = io.StringIO(stdin) if stdin is not None else False
        result = self.context.run(
            self._wrap(command, sudo),
            hide=hide,
            warn=warn,
            in_stream=in_stream,
        )
        command_result = CommandResult.from_invoke_result(result)
        if not command_result.success:
            logger.debug(
                "[%s] exit %s: %s", self.name, command_result.return_code, command_result.stderr
            )
        return command_result

    def command_exists(self, name: str) -> bool:
        """Check whether an executable is on PATH."""
        result = self.run_command(f"command -v {shlex.quote(name)}", sudo=False)
        return result.success

    def write_file(self, path: str, content: str, mode: Optional[str] = None) -> CommandResult:
        """Write content to a file, replacing it."""
        quoted = shlex.quote(path)
        command = f"tee {quoted} > /dev/null"
        if mode:
            # Restrict the file before any secret lands in it
            command = f"touch {quoted} && chmod {mode} {quoted} && {command}"
        return self.run_command(command, stdin=content)

    def read_file(self, path: str) -> Optional[str]:
        """Read a file, or None when it does not exist."""
        result = self.run_command(f"cat {shlex.quote(path)}")
        if result.success:
            return result.stdout
        return None

    def file_exists(self, path: str) -> bool:
        """Check if a file exists on the host."""
        result = self.run_command(f"test -f {shlex.quote(path)}")
        return result.success

    def dir_exists(self, path: str) -> bool:
        """Check if a directory exists on the host."""
        result = self.run_command(f"test -d {shlex.quote(path)}")
        return result.success

    def mkdir(self, path: str) -> bool:
        """Create a directory on the host."""
        result = self.run_command(f"mkdir -p {shlex.quote(path)}")
        return result.success

    def close(self) -> None:
        """Close the underlying connection if there is one."""
        if isinstance(self.context, Connection):
            self.context.close()


def create_host_runner(target: TargetConfig) -> HostRunner:
    """Build a runner for the configured target."""
    if target.is_local:
        return HostRunner(Context(), sudo=target.sudo)

    connect_kwargs = {}
    if target.ssh_key:
        connect_kwargs["pkey"] = _load_key(target.ssh_key_path)
    connection = Connection(
        host=target.host,
        user=target.user,
        port=target.ssh_port,
        connect_kwargs=connect_kwargs,
    )
    # root needs no sudo on the remote side
    return HostRunner(connection, sudo=target.sudo and target.user != "root")


# Global host runner instance
_host_runner: Optional[HostRunner] = None


def get_host_runner(target: Optional[TargetConfig] = None) -> HostRunner:
    """Get or create the global host runner instance."""
    global _host_runner
    if _host_runner is None or target is not None:
        if _host_runner is not None:
            _host_runner.close()
        _host_runner = create_host_runner(target or TargetConfig())
    return _host_runner
