"""Credential resolution for registry hosts."""

from __future__ import annotations

import base64
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

_HUB_ALIASES = ("docker.io", "registry-1.docker.io", "index.docker.io", "hub.docker.com")


def _env_domain(registry: str) -> str:
    return registry.upper().replace(".", "_").replace(":", "_").replace("-", "_")


def resolve_credentials(
    registry: str,
    cli_auths: list[str] | None = None,
) -> tuple[str | None, str | None]:
    """Resolve credentials for a given registry domain.

    Order of precedence:

    1. CLI-provided overrides (``--auth registry=user:pass``)
    2. Domain-specific env vars (``TAGWATCH_AUTH_GHCR_IO_USERNAME``)
    3. Global env vars (``TAGWATCH_USERNAME`` / ``TAGWATCH_PASSWORD``)
    4. Docker ``~/.docker/config.json``

    Docker Hub hosts are interchangeable: credentials registered for
    ``docker.io`` apply to ``registry-1.docker.io`` and vice versa.

    Args:
        registry: The registry hostname to authenticate against.
        cli_auths: Overrides in the form ``registry=user:pass``.

    Returns:
        ``(username, password)`` if found, otherwise ``(None, None)``.
    """
    names = list(_HUB_ALIASES) if registry in _HUB_ALIASES else [registry]

    if cli_auths:
        for auth_override in cli_auths:
            if "=" not in auth_override:
                continue
            domain, creds = auth_override.split("=", 1)
            if domain in names and ":" in creds:
                user, pwd = creds.split(":", 1)
                logger.debug("Using CLI override credentials for %s", registry)
                return user, pwd

    for name in names:
        env_domain = _env_domain(name)
        domain_user = os.environ.get(f"TAGWATCH_AUTH_{env_domain}_USERNAME")
        domain_pass = os.environ.get(f"TAGWATCH_AUTH_{env_domain}_PASSWORD")
        if domain_user and domain_pass:
            logger.debug("Using domain-specific env vars for %s", registry)
            return domain_user, domain_pass

    global_user = os.environ.get("TAGWATCH_USERNAME")
    global_pass = os.environ.get("TAGWATCH_PASSWORD")
    if global_user and global_pass:
        logger.debug("Using global env vars for %s", registry)
        return global_user, global_pass

    return _from_docker_config(registry, names)


def _from_docker_config(registry: str, names: list[str]) -> tuple[str | None, str | None]:
    docker_config_path = Path.home() / ".docker" / "config.json"
    try:
        if not docker_config_path.exists():
            return None, None
        with open(docker_config_path, encoding="utf-8") as f:
            config = json.load(f)
    except (OSError, ValueError) as e:
        logger.debug("Failed to read %s: %s", docker_config_path, e)
        return None, None

    auths = config.get("auths", {})
    candidates: list[str] = []
    for name in names:
        candidates.extend([name, f"https://{name}", f"https://{name}/v1/", f"https://{name}/v2/"])
    if registry in _HUB_ALIASES:
        candidates.append("https://index.docker.io/v1/")

    for candidate in candidates:
        entry = auths.get(candidate)
        if not entry or "auth" not in entry:
            continue
        try:
            auth_str = base64.b64decode(entry["auth"]).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            logger.debug("Failed to decode auth from config.json for %s: %s", candidate, e)
            continue
        if ":" in auth_str:
            user, pwd = auth_str.split(":", 1)
            logger.debug("Using Docker config.json credentials for %s", registry)
            return user, pwd

    return None, None
