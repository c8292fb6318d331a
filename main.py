#!/usr/bin/env python3
"""n8n Provision - Main entry point."""

import sys
from pathlib import Path

# Allow running from a checkout without installing
sys.path.insert(0, str(Path(__file__).parent))


def main():
    """Main entry point."""
    from n8n_provision.cli import main as cli_main
    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
