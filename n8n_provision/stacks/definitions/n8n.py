"""n8n stack definition."""

from ..base import BaseStack, StackConfig, StackInfo, register_stack
from ...core.credentials import ENCRYPTION_KEY_VAR, PASSWORD_VAR


N8N_PORT = 5678
DATA_VOLUME = "n8n_data"


@register_stack
class N8NStack(BaseStack):
    """n8n workflow automation stack."""

    @property
    def info(self) -> StackInfo:
        return StackInfo(
            name="n8n",
            display_name="n8n",
            order=10,
            dependencies=["traefik"],
        )

    def generate_environment(self, config: StackConfig) -> list[str]:
        settings = config.settings
        auth = settings.basic_auth
        env = {
            "N8N_BASIC_AUTH_ACTIVE": "true" if auth.enabled else "false",
            "N8N_BASIC_AUTH_USER": auth.user,
            # Secrets are interpolated by compose from the .env file
            PASSWORD_VAR: f"${{{PASSWORD_VAR}}}",
            "N8N_HOST": settings.domain,
            "N8N_PROTOCOL": "https",
            "N8N_PORT": str(N8N_PORT),
            "WEBHOOK_URL": f"https://{settings.domain}/",
            ENCRYPTION_KEY_VAR: f"${{{ENCRYPTION_KEY_VAR}}}",
            "TZ": config.timezone,
            "GENERIC_TIMEZONE": config.timezone,
        }
        env.update(config.env_vars)
        return [f"{key}={value}" for key, value in env.items()]

    def generate_labels(self, config: StackConfig) -> list[str]:
        settings = config.settings
        router = "traefik.http.routers.n8n"
        return [
            "traefik.enable=true",
            f"{router}.rule=Host(`{settings.domain}`)",
            f"{router}.entrypoints=websecure",
            f"{router}.tls.certresolver={settings.cert_resolver}",
            f"traefik.http.services.n8n.loadbalancer.server.port={N8N_PORT}",
        ]

    def generate_service(self, config: StackConfig) -> dict:
        return {
            "image": config.settings.n8n_image,
            "container_name": "n8n",
            "restart": "always",
            "environment": self.generate_environment(config),
            "volumes": [f"{DATA_VOLUME}:/home/node/.n8n"],
            "labels": self.generate_labels(config),
            "depends_on": list(self.info.dependencies),
        }

    def generate_volumes(self, config: StackConfig) -> dict:
        return {DATA_VOLUME: {}}
