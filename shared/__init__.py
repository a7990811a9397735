"""Shared code for the gateway control plane services."""
