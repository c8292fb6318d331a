"""UFW firewall configuration."""

import logging
import re
from dataclasses import dataclass, field

from .host import HostRunner


logger = logging.getLogger(__name__)

_RULE = re.compile(r"^(\d+)(?:/(tcp|udp))?(?:\s+\(v6\))?\s+ALLOW(?:\s+IN)?\s+", re.IGNORECASE)


@dataclass
class FirewallStatus:
    """Parsed ``ufw status`` output."""
    active: bool
    allowed_ports: list[str] = field(default_factory=list)  # "22/tcp" style

    def allows(self, port: int, proto: str = "tcp") -> bool:
        return f"{port}/{proto}" in self.allowed_ports or str(port) in self.allowed_ports


def parse_ufw_status(output: str) -> FirewallStatus:
    """Parse the text printed by ``ufw status``."""
    active = False
    allowed: list[str] = []
    for line in output.splitlines():
        line = line.strip()
        if line.lower().startswith("status:"):
            active = line.split(":", 1)[1].strip().lower() == "active"
            continue
        match = _RULE.match(line)
        if match:
            port, proto = match.groups()
            rule = f"{port}/{proto}" if proto else port
            if rule not in allowed:
                allowed.append(rule)
    return FirewallStatus(active=active, allowed_ports=allowed)


class UfwManager:
    """Opens ports and enables UFW."""

    def __init__(self, runner: HostRunner):
        self.runner = runner

    def status(self) -> FirewallStatus:
        """Read the current firewall state."""
        result = self.runner.run_command("ufw status")
        if not result.success:
            return FirewallStatus(active=False)
        return parse_ufw_status(result.stdout)

    def missing_ports(self, ports: list[int], proto: str = "tcp") -> list[int]:
        """Ports without an ALLOW rule."""
        current = self.status()
        return [p for p in ports if not current.allows(p, proto)]

    def allow(self, port: int, proto: str = "tcp") -> tuple[bool, str]:
        """Add an ALLOW rule (ufw skips rules it already has)."""
        result = self.runner.run_command(f"ufw allow {int(port)}/{proto}")
        if result.success:
            return True, result.stdout
        return False, result.output

    def enable(self) -> tuple[bool, str]:
        """Enable the firewall without the interactive prompt."""
        result = self.runner.run_command("ufw --force enable")
        if result.success:
            return True, result.stdout
        return False, result.output

    def apply(self, ports: list[int], proto: str = "tcp") -> tuple[bool, str]:
        """Allow every port, then enable the firewall."""
        for port in ports:
            ok, msg = self.allow(port, proto)
            if not ok:
                return False, f"ufw allow {port}/{proto} failed: {msg}"
            logger.debug("Allowed %s/%s", port, proto)

        ok, msg = self.enable()
        if not ok:
            return False, f"ufw enable failed: {msg}"
        return True, f"Firewall active, allowed: {', '.join(f'{p}/{proto}' for p in ports)}"
