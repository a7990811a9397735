"""Provisioner worker: drives gateway deployments onto their servers."""
