"""
Domain models — Pydantic types for vpsbootstrap.

All models are re-exported here for convenient access:

    from vpsbootstrap.core.models import Action, Receipt, ProvisioningConfig, Settings
"""

from vpsbootstrap.core.models.action import Action, Receipt
from vpsbootstrap.core.models.config import ProvisioningConfig
from vpsbootstrap.core.models.settings import HostPaths, Settings, Versions
from vpsbootstrap.core.models.state import PhaseRecord, RunState, StepRecord
from vpsbootstrap.core.models.template import GeneratedFile

__all__ = [
    "Action",
    "GeneratedFile",
    "HostPaths",
    "PhaseRecord",
    "ProvisioningConfig",
    "Receipt",
    "RunState",
    "Settings",
    "StepRecord",
    "Versions",
]
