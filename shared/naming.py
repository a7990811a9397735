"""Naming rules for gateway instances, their containers and state directories."""

import re

INSTANCE_NAME_RE = re.compile(r"^[a-z][a-z0-9-]{1,30}$")
INSTANCE_NAME_ERROR = "invalid name: must match ^[a-z][a-z0-9-]{1,30}$"

DEFAULT_INSTANCES_ROOT = "/opt/openclaw-instances"


def is_valid_instance_name(name: str) -> bool:
    return bool(INSTANCE_NAME_RE.fullmatch(name))


def container_name(org_slug: str, instance_name: str) -> str:
    """Docker container name: ``openclaw-<org>-<instance>``."""
    return f"openclaw-{org_slug}-{instance_name}"


def instance_dir(
    org_slug: str, instance_name: str, root: str = DEFAULT_INSTANCES_ROOT
) -> str:
    """Host directory holding the instance state, bind-mounted into the container."""
    return f"{root.rstrip('/')}/{org_slug}-{instance_name}"
