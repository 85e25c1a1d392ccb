"""Yatai Bento builder - registration, upload and image builds for Bento versions.

This package registers Bento versions, issues presigned upload URLs for
their archives and provisions Kubernetes build pods that turn uploaded
archives into container images.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
