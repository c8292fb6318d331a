"""APT package management on the target host."""

import logging
import shlex

from .host import CommandResult, HostRunner


logger = logging.getLogger(__name__)

APT_ENV = "DEBIAN_FRONTEND=noninteractive"


class AptManager:
    """Installs and queries Debian/Ubuntu packages."""

    def __init__(self, runner: HostRunner):
        self.runner = runner

    def update(self) -> CommandResult:
        """Refresh the package index."""
        return self.runner.run_command(f"{APT_ENV} apt-get update -y")

    def upgrade(self) -> CommandResult:
        """Upgrade installed packages."""
        return self.runner.run_command(f"{APT_ENV} apt-get upgrade -y")

    def update_and_upgrade(self) -> tuple[bool, str]:
        """Refresh the index and upgrade the system."""
        for action in (self.update, self.upgrade):
            result = action()
            if not result.success:
                return False, result.output
        return True, "System packages up to date"

    def is_installed(self, package: str) -> bool:
        """Check if a package is installed."""
        result = self.runner.run_command(
            f"dpkg-query -W -f='${{Status}}' {shlex.quote(package)}", sudo=False
        )
        return result.success and "install ok installed" in result.stdout

    def missing(self, packages: list[str]) -> list[str]:
        """Return the packages that are not installed yet."""
        return [p for p in packages if not self.is_installed(p)]

    def install(self, packages: list[str], update: bool = False) -> tuple[bool, str]:
        """Install packages non-interactively."""
        if not packages:
            return True, "Nothing to install"

        if update:
            result = self.update()
            if not result.success:
                return False, result.output

        names = " ".join(shlex.quote(p) for p in packages)
        logger.info("Installing packages: %s", ", ".join(packages))
        result = self.runner.run_command(f"{APT_ENV} apt-get install -y {names}")
        if result.success:
            return True, f"Installed: {', '.join(packages)}"
        return False, result.output
