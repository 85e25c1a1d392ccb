"""Organization module.

This module handles:
- Organization and Cluster records
- Validation of organization storage and registry configuration
- Loading the major cluster used for builds
"""

from yatai_bento.organizations.models import Cluster, Organization

__all__ = ["Cluster", "Organization"]
