"""Compose file rendering and validation."""

import yaml

from ..core.errors import TemplateError
from .base import StackConfig, get_available_stacks, get_stack


COMPOSE_HEADER = "# Managed by n8n-provision. Manual edits are overwritten on every run.\n"
REQUIRED_PORTS = ("80:80", "443:443")


class ComposeRenderer:
    """Builds the compose document from the registered stacks."""

    def build(self, config: StackConfig) -> dict:
        """Return the compose document as a mapping."""
        services = {}
        volumes = {}
        for name in get_available_stacks():
            stack = get_stack(name)
            valid, msg = stack.validate_config(config)
            if not valid:
                raise TemplateError(f"{name}: {msg}")
            services[name] = stack.generate_service(config)
            volumes.update(stack.generate_volumes(config))

        document = {"services": services}
        if volumes:
            document["volumes"] = volumes
        return document

    def render(self, config: StackConfig) -> str:
        """Render and validate the compose file text."""
        content = COMPOSE_HEADER + yaml.dump(
            self.build(config), default_flow_style=False, sort_keys=False
        )
        validate_compose(content, config.settings.domain)
        return content


def validate_compose(content: str, domain: str) -> dict:
    """Parse rendered compose text back and check the routing contract."""
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise TemplateError(f"Compose file is not valid YAML: {e}") from e

    if not isinstance(document, dict) or not isinstance(document.get("services"), dict):
        raise TemplateError("Compose file has no services mapping")

    services = document["services"]
    if set(services) != {"traefik", "n8n"}:
        raise TemplateError(f"Expected services traefik and n8n, got: {', '.join(services)}")

    ports = services["traefik"].get("ports") or []
    for port in REQUIRED_PORTS:
        if port not in ports:
            raise TemplateError(f"Proxy does not publish {port}")

    rule = f"Host(`{domain}`)"
    labels = services["n8n"].get("labels") or []
    if not any(label.endswith(f".rule={rule}") for label in labels):
        raise TemplateError(f"No router rule for {rule}")

    for volume in services["n8n"].get("volumes") or []:
        name = volume.split(":", 1)[0]
        if not name.startswith(("/", ".")) and name not in (document.get("volumes") or {}):
            raise TemplateError(f"Volume {name} is not declared")

    return document
