"""Routers package."""

from . import (
    credentials,
    deployments,
    gateway_instances,
    health,
    organizations,
    servers,
    skills,
    system,
)

__all__ = [
    "credentials",
    "deployments",
    "gateway_instances",
    "health",
    "organizations",
    "servers",
    "skills",
    "system",
]
