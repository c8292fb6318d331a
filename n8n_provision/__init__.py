"""Provision n8n behind Traefik with UFW and systemd autostart."""

__version__ = "1.0.0"
