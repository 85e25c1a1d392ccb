"""Image build provisioning module.

This module handles:
- Kubernetes manifests for the builder pod and its credentials
- Idempotent get-or-create provisioning steps
- The provisioner run when a Bento version's upload succeeds
"""

from yatai_bento.builds.provisioner import (
    BuildProvisioner,
    ProvisioningError,
    ProvisioningReport,
)

__all__ = ["BuildProvisioner", "ProvisioningError", "ProvisioningReport"]
