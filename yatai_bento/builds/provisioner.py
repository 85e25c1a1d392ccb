"""Build provisioner.

Once a Bento version's archive is uploaded, this module provisions the
Kubernetes resources that build it into a container image:

1. Resolve the Bento and organization, and require storage and registry
   configuration (no cluster call is made without them)
2. Resolve a client for the organization's major cluster
3. Ensure the build namespace
4. Ensure the object store credential secret
5. Ensure the registry-auth config map
6. Submit the builder pod

Provisioning returns once the pod is accepted; the build outcome is
observed elsewhere.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from kubernetes.client import CoreV1Api
from sqlalchemy.orm import Session

from yatai_bento import naming
from yatai_bento.builds.manifests import (
    aws_secret_manifest,
    builder_pod_manifest,
    docker_config_manifest,
    namespace_manifest,
)
from yatai_bento.builds.steps import (
    EnsureConfigMap,
    EnsureNamespace,
    EnsurePod,
    EnsureSecret,
    ProvisionStep,
    StepResult,
    run_pipeline,
)
from yatai_bento.clusters.ratelimit import RateLimitConfig
from yatai_bento.clusters.resolver import ClusterAccessResolver
from yatai_bento.config import get_settings
from yatai_bento.organizations.service import (
    get_major_cluster,
    get_organization,
    require_registry_uri,
    require_storage_config,
)
from yatai_bento.versions.loaders import get_bento

if TYPE_CHECKING:
    from yatai_bento.config import Settings
    from yatai_bento.versions.models import BentoVersion

logger = logging.getLogger(__name__)


@dataclass
class ProvisioningReport:
    """Summary of a provisioning attempt.

    Attributes:
        version_id: BentoVersion ID.
        namespace: Namespace the builder runs in.
        pod_name: Builder pod name.
        context_uri: s3:// URI handed to the builder.
        image_name: Image reference the builder pushes.
        results: Results of the steps that ran.
    """

    version_id: int
    namespace: str
    pod_name: str
    context_uri: str
    image_name: str
    results: list[StepResult] = field(default_factory=list)

    @property
    def failed_step(self) -> StepResult | None:
        """Return the failed step, if any."""
        for result in self.results:
            if result.failed:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version_id": self.version_id,
            "namespace": self.namespace,
            "pod_name": self.pod_name,
            "context_uri": self.context_uri,
            "image_name": self.image_name,
            "steps": [r.to_dict() for r in self.results],
        }


class ProvisioningError(Exception):
    """Raised when a provisioning step fails."""

    def __init__(
        self,
        report: ProvisioningReport,
        result: StepResult,
        code: str = "provisioning_failed",
    ) -> None:
        super().__init__(f"{result.step} {result.resource}: {result.error}")
        self.report = report
        self.result = result
        self.code = code


class BuildProvisioner:
    """Provisions the builder pod for uploaded Bento versions."""

    def __init__(
        self,
        resolver: ClusterAccessResolver,
        settings: Settings | None = None,
        core_api_factory: Callable[[Any], CoreV1Api] = CoreV1Api,
    ) -> None:
        """Initialize the provisioner.

        Args:
            resolver: Resolves clusters into API clients.
            settings: Application settings.
            core_api_factory: Builds a CoreV1Api from an API client.
        """
        self.resolver = resolver
        self.settings = settings or get_settings()
        self._core_api_factory = core_api_factory

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> BuildProvisioner:
        """Build a provisioner whose resolver uses the configured rate limits."""
        settings = settings or get_settings()
        resolver = ClusterAccessResolver(RateLimitConfig.from_settings(settings))
        return cls(resolver, settings=settings)

    def provision(self, session: Session, version: BentoVersion) -> ProvisioningReport:
        """Provision the build of an uploaded Bento version.

        Args:
            session: Database session.
            version: BentoVersion whose upload succeeded.

        Returns:
            ProvisioningReport listing every step outcome.

        Raises:
            OrganizationConfigError: If storage or registry config is missing.
            ClusterNotFoundError: If the organization has no cluster.
            ClusterAccessError: If the cluster credentials are unusable.
            ProvisioningError: If a Kubernetes step fails.
        """
        settings = self.settings

        bento = get_bento(session, version.bento_id)
        org = get_organization(session, bento.organization_id)
        storage = require_storage_config(org, settings.s3_endpoint_url)
        registry_uri = require_registry_uri(org)

        cluster = get_major_cluster(session, org)
        resolved = self.resolver.resolve(cluster)

        object_name = naming.s3_object_name(
            org.name, bento.name, version.version, settings.object_collection
        )
        report = ProvisioningReport(
            version_id=version.id,
            namespace=settings.builder_namespace,
            pod_name=naming.image_builder_kube_name(
                org.name, bento.name, version.version, settings.kube_name_max_length
            ),
            context_uri=naming.s3_context_uri(storage.bucket_name, object_name),
            image_name=naming.image_name(
                registry_uri,
                org.name,
                bento.name,
                version.version,
                settings.image_tag_prefix,
            ),
        )

        namespace = report.namespace
        steps: list[ProvisionStep] = [
            EnsureNamespace(namespace_manifest(namespace)),
            EnsureSecret(namespace, aws_secret_manifest(storage)),
            EnsureConfigMap(namespace, docker_config_manifest()),
            EnsurePod(
                namespace,
                builder_pod_manifest(
                    name=report.pod_name,
                    builder_image=settings.builder_image,
                    context_uri=report.context_uri,
                    destination=report.image_name,
                    region=storage.region,
                    version_id=version.id,
                ),
            ),
        ]

        logger.info(
            "Provisioning build of %s/%s:%s on cluster %s",
            org.name,
            bento.name,
            version.version,
            cluster.name,
        )
        try:
            api = self._core_api_factory(resolved.api_client)
            report.results = run_pipeline(steps, api)
        finally:
            resolved.api_client.close()

        failed = report.failed_step
        if failed is not None:
            logger.error(
                "Provisioning of version %d failed at %s: %s",
                version.id,
                failed.step,
                failed.error,
            )
            raise ProvisioningError(report, failed)

        logger.info("Builder pod %s/%s submitted", namespace, report.pod_name)
        return report


__all__ = ["BuildProvisioner", "ProvisioningError", "ProvisioningReport"]
