"""Command line interface."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.panel import Panel
from rich.table import Table

from .core.config_loader import ProvisionConfig, get_config_loader
from .core.errors import ConfigError, ProvisionError, TemplateError
from .core.host import get_host_runner
from .core.logging_setup import console, setup_logging
from .core.provisioner import Provisioner, StepStatus


logger = logging.getLogger(__name__)

DEFAULT_BACKUP_DIR = "/var/backups/n8n"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="n8n-provision",
        description="Provision n8n behind Traefik with UFW and systemd on an Ubuntu host",
    )
    parser.add_argument('--config-dir', type=Path,
                        help='Directory holding settings.yaml (default: ./config)')
    parser.add_argument('--domain', help='Public domain served by n8n')
    parser.add_argument('--email', help="Let's Encrypt notification email")
    parser.add_argument('--host', help='Target host (default: localhost)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Show every command')
    parser.add_argument('--log-file', type=Path, help='Also write a debug log to this file')

    sub = parser.add_subparsers(dest='command')
    sub.add_parser('init', help='Write settings.yaml from the given options')
    provision = sub.add_parser('provision', help='Converge the host (default)')
    provision.add_argument('--rotate-key', action='store_true',
                           help='Generate a new n8n encryption key even if one is stored')
    sub.add_parser('plan', help='Show which steps would run')
    sub.add_parser('render', help='Print the generated compose file and systemd unit')
    sub.add_parser('status', help='Show containers, firewall and autostart state')
    logs = sub.add_parser('logs', help='Show stack logs')
    logs.add_argument('service', nargs='?', choices=['n8n', 'traefik'])
    logs.add_argument('--tail', type=int, default=100)
    sub.add_parser('update', help='Pull new images and restart the stack')
    backup = sub.add_parser('backup', help='Archive the data directory and n8n volume')
    backup.add_argument('--dest', default=DEFAULT_BACKUP_DIR)
    down = sub.add_parser('down', help='Stop the stack')
    down.add_argument('--volumes', action='store_true', help='Also delete the n8n data volume')
    sub.add_parser('tui', help='Open the terminal UI')
    return parser


def load_config(args: argparse.Namespace) -> ProvisionConfig:
    loader = get_config_loader(args.config_dir)
    return loader.load_config(domain=args.domain, email=args.email, host=args.host)


def cmd_init(args, config: ProvisionConfig) -> int:
    loader = get_config_loader()
    loader.save_config(config)
    console.print(f"Wrote {loader.config_file}")
    return 0


def cmd_provision(args, provisioner: Provisioner) -> int:
    report = provisioner.run()
    logger.info("%d of %d steps changed the host", len(report.changed), len(report.results))
    console.print(Panel(report.summary(), title="n8n", border_style="green"))
    return 0


def cmd_plan(args, provisioner: Provisioner) -> int:
    report = provisioner.plan()
    table = Table(title=f"Plan for {provisioner.config.domain}")
    table.add_column("Step")
    table.add_column("Action")
    table.add_column("Reason")
    for result in report.results:
        action = "run" if result.status == StepStatus.PLANNED else "skip"
        table.add_row(result.name, action, result.message)
    console.print(table)
    return 0


def cmd_render(args, provisioner: Provisioner) -> int:
    console.rule(provisioner.config.compose_path)
    console.print(provisioner.render_compose(), markup=False, highlight=False)
    console.rule(provisioner.config.unit_path)
    console.print(provisioner.render_unit(), markup=False, highlight=False)
    return 0


def cmd_status(args, provisioner: Provisioner) -> int:
    report = provisioner.status()
    table = Table(title="Containers")
    table.add_column("Name")
    table.add_column("Image")
    table.add_column("Status")
    for c in report.containers:
        table.add_row(c.name, c.image, c.status, style=None if c.running else "red")
    console.print(table)
    firewall = "active" if report.firewall.active else "inactive"
    console.print(f"Firewall: {firewall} ({', '.join(report.firewall.allowed_ports) or 'no rules'})")
    console.print(
        f"Autostart: {'enabled' if report.unit_enabled else 'disabled'}, "
        f"{'active' if report.unit_active else 'inactive'}"
    )
    return 0 if report.running else 1


def cmd_logs(args, provisioner: Provisioner) -> int:
    console.print(provisioner.logs(service=args.service, tail=args.tail), markup=False, highlight=False)
    return 0


def cmd_update(args, provisioner: Provisioner) -> int:
    ok, output = provisioner.update()
    if not ok:
        logger.error(output)
        return 1
    logger.info("Stack updated")
    return 0


def cmd_backup(args, provisioner: Provisioner) -> int:
    dest = args.dest
    if provisioner.runner.name == "localhost":
        dest = str(Path(dest).expanduser().resolve())
    ok, archives = provisioner.backup(dest)
    if not ok:
        return 1
    for archive in archives:
        console.print(f"Wrote {archive}")
    return 0


def cmd_down(args, provisioner: Provisioner) -> int:
    ok, output = provisioner.teardown(remove_volumes=args.volumes)
    if not ok:
        logger.error(output)
        return 1
    logger.info("Stack stopped")
    return 0


HANDLERS = {
    "provision": cmd_provision,
    "plan": cmd_plan,
    "render": cmd_render,
    "status": cmd_status,
    "logs": cmd_logs,
    "update": cmd_update,
    "backup": cmd_backup,
    "down": cmd_down,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "provision"

    setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        config = load_config(args)
    except ConfigError as e:
        logger.error("%s", e)
        return 1

    if command == "init":
        return cmd_init(args, config)
    if command == "tui":
        from .tui import run_app
        run_app(config)
        return 0

    try:
        runner = get_host_runner(config.target)
    except (OSError, ValueError) as e:
        logger.error("Cannot connect to %s: %s", config.target.host, e)
        return 1

    provisioner = Provisioner(config, runner, rotate_key=getattr(args, "rotate_key", False))
    try:
        return HANDLERS[command](args, provisioner)
    except ProvisionError as e:
        logger.error("Step '%s' failed: %s", e.step, e.message)
        if e.output:
            console.print(e.output, markup=False, highlight=False)
        return 1
    except TemplateError as e:
        logger.error("Rendering failed: %s", e)
        return 1
    except OSError as e:
        logger.error("Lost connection to %s: %s", runner.name, e)
        return 1
    finally:
        runner.close()


if __name__ == "__main__":
    sys.exit(main())
