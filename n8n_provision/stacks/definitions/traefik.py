"""Traefik reverse proxy stack definition."""

from ..base import BaseStack, StackConfig, StackInfo, register_stack


ACME_STAGING_SERVER = "https://acme-staging-v02.api.letsencrypt.org/directory"


@register_stack
class TraefikStack(BaseStack):
    """Traefik reverse proxy terminating TLS for the stack."""

    @property
    def info(self) -> StackInfo:
        return StackInfo(
            name="traefik",
            display_name="Traefik (Reverse Proxy)",
            order=0,
        )

    def generate_command(self, config: StackConfig) -> list[str]:
        """Static configuration passed as CLI flags."""
        settings = config.settings
        resolver = f"--certificatesresolvers.{settings.cert_resolver}.acme"
        command = [
            "--providers.docker=true",
            "--providers.docker.exposedbydefault=false",
            "--entrypoints.web.address=:80",
            "--entrypoints.web.http.redirections.entrypoint.to=websecure",
            "--entrypoints.web.http.redirections.entrypoint.scheme=https",
            "--entrypoints.websecure.address=:443",
            f"{resolver}.tlschallenge=true",
            f"{resolver}.email={settings.effective_email}",
            f"{resolver}.storage=/letsencrypt/acme.json",
        ]
        if settings.acme_staging:
            command.append(f"{resolver}.caserver={ACME_STAGING_SERVER}")
        return command

    def generate_service(self, config: StackConfig) -> dict:
        return {
            "image": config.settings.traefik_image,
            "container_name": "traefik",
            "command": self.generate_command(config),
            "ports": ["80:80", "443:443"],
            "volumes": [
                "/var/run/docker.sock:/var/run/docker.sock:ro",
                "./letsencrypt:/letsencrypt",
            ],
            "restart": "always",
        }
