"""
Registry components.

Provisioning of the image repository, docker login, and multi-architecture
image publishing.
"""

from .auth import RegistryAuth
from .provisioner import ProvisionState, RegistryProvisioner
from .publisher import ImagePublisher, PublishResult

__all__ = [
    "ImagePublisher",
    "ProvisionState",
    "PublishResult",
    "RegistryAuth",
    "RegistryProvisioner",
]
