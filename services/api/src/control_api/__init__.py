"""Gateway control plane API."""
