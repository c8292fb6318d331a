"""Shared fixtures: a simulated Ubuntu host behind a real HostRunner."""

import shlex
from collections import Counter
from dataclasses import dataclass

import pytest

from n8n_provision.core.config_loader import ProvisionConfig
from n8n_provision.core.host import HostRunner


@dataclass
class FakeResult:
    """Shape of an invoke Result as far as CommandResult reads it."""
    stdout: str = ""
    stderr: str = ""
    return_code: int = 0


class FakeHost:
    """In-memory host answering the commands the provisioner issues.

    Stands in for an ``invoke.Context``: ``run`` receives the final command
    string, so chains joined with ``&&`` are executed segment by segment.
    """

    def __init__(self):
        self.files = {"/etc/timezone": "Europe/Berlin\n"}
        self.modes = {}
        self.dirs = {"/", "/etc", "/etc/systemd/system", "/tmp"}
        self.owners = {}
        self.users = {"root"}
        self.packages = {"curl", "ca-certificates"}
        self.executables = {"sh", "curl", "tar"}
        self.compose_plugin = False
        self.ufw_active = False
        self.ufw_rules = []
        self.enabled_units = set()
        self.stack_up = False
        self.fail_on = set()
        self.raise_on = set()  # markers that make run() raise like a dropped connection
        self.commands = []
        self.counts = Counter()
        self.cwd = "/"

    # -- invoke.Context interface ------------------------------------------

    def run(self, command, hide=True, warn=True, in_stream=None):
        self.commands.append(command)
        if any(marker in command for marker in self.raise_on):
            raise OSError("connection reset by peer")
        stdin = in_stream.read() if in_stream else ""
        result = FakeResult()
        for segment in command.split(" && "):
            if any(marker in segment for marker in self.fail_on):
                return FakeResult(stderr=f"simulated failure: {segment}", return_code=1)
            result = self._run_segment(segment, stdin)
            if result.return_code != 0:
                break
        return result

    # -- helpers -----------------------------------------------------------

    def ran(self, fragment: str) -> int:
        """Number of issued commands containing fragment."""
        return sum(1 for c in self.commands if fragment in c)

    def ufw_status_text(self) -> str:
        if not self.ufw_active:
            return "Status: inactive"
        lines = [
            "Status: active",
            "",
            "To                         Action      From",
            "--                         ------      ----",
        ]
        lines += [f"{rule:<27}ALLOW       Anywhere" for rule in self.ufw_rules]
        lines += [f"{rule + ' (v6)':<27}ALLOW       Anywhere (v6)" for rule in self.ufw_rules]
        return "\n".join(lines)

    def _run_segment(self, segment: str, stdin: str) -> FakeResult:
        segment = segment.replace("> /dev/null", "").strip()
        args = shlex.split(segment)
        while args and "=" in args[0] and not args[0].startswith("-"):
            args = args[1:]  # leading VAR=value assignments
        if not args:
            return FakeResult()

        cmd, rest = args[0], args[1:]
        handler = getattr(self, f"_cmd_{cmd.replace('-', '_')}", None)
        if handler is None:
            return FakeResult(stderr=f"{cmd}: command not found", return_code=127)
        self.counts[cmd] += 1
        return handler(rest, stdin)

    def _cmd_command(self, args, stdin):
        name = args[-1]
        if name in self.executables:
            return FakeResult(stdout=f"/usr/bin/{name}")
        return FakeResult(return_code=1)

    def _cmd_id(self, args, stdin):
        if args[-1] in self.users:
            return FakeResult(stdout="1001")
        return FakeResult(stderr=f"id: '{args[-1]}': no such user", return_code=1)

    def _cmd_useradd(self, args, stdin):
        name = args[-1]
        if name in self.users:
            return FakeResult(stderr=f"useradd: user '{name}' already exists", return_code=9)
        self.users.add(name)
        self.dirs.add(f"/home/{name}")
        return FakeResult()

    def _cmd_mkdir(self, args, stdin):
        self.dirs.add(args[-1])
        if "-m" in args:
            self.modes[args[-1]] = args[args.index("-m") + 1]
        return FakeResult()

    def _cmd_chown(self, args, stdin):
        user = args[-2].split(":")[0]
        if user not in self.users:
            return FakeResult(stderr=f"chown: invalid user: '{args[-2]}'", return_code=1)
        path = args[-1]
        self.owners[path] = user
        for file_path in self.files:
            if file_path.startswith(path + "/"):
                self.owners[file_path] = user
        return FakeResult()

    def _cmd_stat(self, args, stdin):
        path = args[-1]
        if path in self.owners:
            return FakeResult(stdout=self.owners[path])
        if path in self.dirs or path in self.files:
            return FakeResult(stdout="root")
        return FakeResult(return_code=1)

    def _cmd_cat(self, args, stdin):
        path = args[-1]
        if path in self.files:
            return FakeResult(stdout=self.files[path])
        return FakeResult(stderr=f"cat: {path}: No such file or directory", return_code=1)

    def _cmd_touch(self, args, stdin):
        self.files.setdefault(args[-1], "")
        return FakeResult()

    def _cmd_chmod(self, args, stdin):
        for path in args[1:]:
            self.modes[path] = args[0]
        return FakeResult()

    def _cmd_tee(self, args, stdin):
        path = args[-1]
        parent = path.rsplit("/", 1)[0] or "/"
        if parent not in self.dirs:
            return FakeResult(stderr=f"tee: {path}: No such file or directory", return_code=1)
        self.files[path] = stdin
        return FakeResult()

    def _cmd_test(self, args, stdin):
        flag, path = args
        exists = path in self.files if flag == "-f" else path in self.dirs
        return FakeResult(return_code=0 if exists else 1)

    def _cmd_rm(self, args, stdin):
        self.files.pop(args[-1], None)
        return FakeResult()

    def _cmd_dpkg_query(self, args, stdin):
        if args[-1] in self.packages:
            return FakeResult(stdout="install ok installed")
        return FakeResult(stderr=f"dpkg-query: no packages found matching {args[-1]}", return_code=1)

    def _cmd_apt_get(self, args, stdin):
        if args[0] == "install":
            names = [a for a in args[1:] if not a.startswith("-")]
            self.packages.update(names)
            if "docker-compose-plugin" in names:
                self.compose_plugin = True
        return FakeResult()

    def _cmd_curl(self, args, stdin):
        return FakeResult()

    def _cmd_sh(self, args, stdin):
        if args and args[0] == "/tmp/get-docker.sh":
            self.executables.add("docker")
        return FakeResult()

    def _cmd_cd(self, args, stdin):
        if args[0] not in self.dirs:
            return FakeResult(stderr=f"cd: {args[0]}: No such file or directory", return_code=2)
        self.cwd = args[0]
        return FakeResult()

    def _cmd_tar(self, args, stdin):
        return FakeResult()

    def _cmd_umask(self, args, stdin):
        return FakeResult()

    def _cmd_docker(self, args, stdin):
        if "docker" not in self.executables:
            return FakeResult(stderr="docker: command not found", return_code=127)
        if args[0] == "--version":
            return FakeResult(stdout="Docker version 27.3.1, build ce12230")
        if args[0] == "run":
            return FakeResult()
        if args[0] != "compose":
            return FakeResult(return_code=1)
        if not self.compose_plugin:
            return FakeResult(stderr="docker: 'compose' is not a docker command.", return_code=1)

        sub = args[1]
        if sub == "version":
            return FakeResult(stdout="Docker Compose version v2.29.7")
        if f"{self.cwd}/docker-compose.yml" not in self.files:
            return FakeResult(stderr="no configuration file provided: not found", return_code=1)
        if sub == "up":
            self.stack_up = True
        elif sub == "down":
            self.stack_up = False
        elif sub == "ps":
            if not self.stack_up:
                return FakeResult()
            return FakeResult(stdout=(
                "n8n|n8nio/n8n:latest|Up 2 minutes|5678/tcp\n"
                "traefik|traefik:v3.1|Up 2 minutes|0.0.0.0:80->80/tcp, 0.0.0.0:443->443/tcp"
            ))
        elif sub == "logs":
            return FakeResult(stdout="n8n  | Editor is now accessible")
        return FakeResult()

    def _cmd_ufw(self, args, stdin):
        if args[0] == "allow":
            if args[1] not in self.ufw_rules:
                self.ufw_rules.append(args[1])
                return FakeResult(stdout="Rule added\nRule added (v6)")
            return FakeResult(stdout="Skipping adding existing rule")
        if args[0] == "--force" and args[1] == "enable":
            self.ufw_active = True
            return FakeResult(stdout="Firewall is active and enabled on system startup")
        if args[0] == "status":
            return FakeResult(stdout=self.ufw_status_text())
        return FakeResult(return_code=1)

    def _cmd_systemctl(self, args, stdin):
        action = args[0]
        if action == "daemon-reload":
            return FakeResult()
        unit = args[1]
        if action == "enable":
            if f"/etc/systemd/system/{unit}" not in self.files:
                return FakeResult(stderr=f"Failed to enable unit: Unit file {unit} does not exist.", return_code=1)
            self.enabled_units.add(unit)
            return FakeResult(stderr="Created symlink ...")
        if action == "is-enabled":
            if unit in self.enabled_units:
                return FakeResult(stdout="enabled")
            return FakeResult(stdout="disabled", return_code=1)
        if action == "is-active":
            if unit in self.enabled_units and self.stack_up:
                return FakeResult(stdout="active")
            return FakeResult(stdout="inactive", return_code=3)
        return FakeResult(return_code=1)


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def runner(host):
    return HostRunner(host, sudo=False)


@pytest.fixture
def config():
    return ProvisionConfig(domain="n8n.example.org", email="admin@example.org")
