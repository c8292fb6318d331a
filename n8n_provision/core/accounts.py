"""Service account and directory management."""

import shlex
from typing import Optional

from .host import HostRunner


class AccountManager:
    """Manages the system user that owns the stack data."""

    def __init__(self, runner: HostRunner):
        self.runner = runner

    def user_exists(self, name: str) -> bool:
        """Check if a system user exists."""
        result = self.runner.run_command(f"id -u {shlex.quote(name)}", sudo=False)
        return result.success

    def create_user(self, name: str, shell: str = "/bin/bash") -> tuple[bool, str]:
        """Create a user with a home directory."""
        result = self.runner.run_command(
            f"useradd -m -s {shlex.quote(shell)} {shlex.quote(name)}"
        )
        if result.success:
            return True, f"User '{name}' created"
        return False, result.output

    def ensure_user(self, name: str) -> tuple[bool, str]:
        """Create the user unless it already exists."""
        if self.user_exists(name):
            return True, f"User '{name}' already exists"
        return self.create_user(name)

    def ensure_directory(self, path: str, owner: str) -> tuple[bool, str]:
        """Create a directory and hand it (recursively) to owner."""
        quoted = shlex.quote(path)
        result = self.runner.run_command(
            f"mkdir -p {quoted} && chown -R {shlex.quote(owner)}:{shlex.quote(owner)} {quoted}"
        )
        if result.success:
            return True, f"{path} owned by {owner}"
        return False, result.output

    def directory_owner(self, path: str) -> Optional[str]:
        """Return the owning user of a path, or None if it is missing."""
        result = self.runner.run_command(f"stat -c %U {shlex.quote(path)}")
        if result.success:
            return result.stdout
        return None
