"""Gateway provisioning: port allocation, runtime config, the step pipeline."""
