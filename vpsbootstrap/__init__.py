"""vpsbootstrap — two-phase provisioning for a single Ubuntu VPS."""

__version__ = "0.1.0"
