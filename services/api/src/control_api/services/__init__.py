"""Control plane domain services."""
