"""Generators — render host configuration files from a ProvisioningConfig."""
