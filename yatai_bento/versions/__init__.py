"""Bento version module.

This module handles:
- Bento and BentoVersion records
- Build and upload status transitions
- Registration, upload URL issuance and status updates

Access the service via yatai_bento.versions.service.
"""

from yatai_bento.versions.models import Bento, BentoVersion

__all__ = ["Bento", "BentoVersion"]
