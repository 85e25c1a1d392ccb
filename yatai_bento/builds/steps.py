"""Idempotent provisioning steps.

Each step looks its resource up by name and creates it only when the
lookup answers 404. A 409 on create means a concurrent caller won the
race, which counts as the resource being present.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from kubernetes.client import CoreV1Api, V1ConfigMap, V1Namespace, V1Pod, V1Secret
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from yatai_bento.types import ProvisionOutcome

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


@dataclass
class StepResult:
    """Result of running one provisioning step.

    Attributes:
        step: Step name (e.g. 'ensure_namespace').
        resource: Name of the Kubernetes resource handled.
        outcome: created, already_present or failed.
        error: The error behind a failed outcome.
    """

    step: str
    resource: str
    outcome: ProvisionOutcome
    error: Exception | None = None

    @property
    def failed(self) -> bool:
        """Check if the step failed."""
        return self.outcome == ProvisionOutcome.FAILED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "step": self.step,
            "resource": self.resource,
            "outcome": self.outcome.value,
            "error": str(self.error) if self.error is not None else None,
        }


class ProvisionStep(ABC):
    """A get-then-create-if-absent operation on one resource."""

    name: str = "step"

    def __init__(self, namespace: str, resource_name: str) -> None:
        self.namespace = namespace
        self.resource_name = resource_name

    @abstractmethod
    def read(self, api: CoreV1Api) -> Any:
        """Look the resource up by name."""

    @abstractmethod
    def create(self, api: CoreV1Api) -> Any:
        """Create the resource."""

    def _result(
        self, outcome: ProvisionOutcome, error: Exception | None = None
    ) -> StepResult:
        return StepResult(
            step=self.name, resource=self.resource_name, outcome=outcome, error=error
        )

    def run(self, api: CoreV1Api) -> StepResult:
        """Ensure the resource exists.

        Args:
            api: CoreV1Api bound to the target cluster.

        Returns:
            StepResult; errors are reported in the result, not raised.
        """
        try:
            self.read(api)
            return self._result(ProvisionOutcome.ALREADY_PRESENT)
        except ApiException as e:
            if e.status != HTTP_NOT_FOUND:
                return self._result(ProvisionOutcome.FAILED, e)
        except HTTPError as e:
            return self._result(ProvisionOutcome.FAILED, e)

        try:
            self.create(api)
        except ApiException as e:
            if e.status == HTTP_CONFLICT:
                logger.debug("%s %s created concurrently", self.name, self.resource_name)
                return self._result(ProvisionOutcome.ALREADY_PRESENT)
            return self._result(ProvisionOutcome.FAILED, e)
        except HTTPError as e:
            return self._result(ProvisionOutcome.FAILED, e)

        return self._result(ProvisionOutcome.CREATED)


class EnsureNamespace(ProvisionStep):
    """Ensure the build namespace exists."""

    name = "ensure_namespace"

    def __init__(self, body: V1Namespace) -> None:
        super().__init__(body.metadata.name, body.metadata.name)
        self.body = body

    def read(self, api: CoreV1Api) -> Any:
        return api.read_namespace(self.resource_name)

    def create(self, api: CoreV1Api) -> Any:
        return api.create_namespace(self.body)


class EnsureSecret(ProvisionStep):
    """Ensure the object store credential secret exists."""

    name = "ensure_secret"

    def __init__(self, namespace: str, body: V1Secret) -> None:
        super().__init__(namespace, body.metadata.name)
        self.body = body

    def read(self, api: CoreV1Api) -> Any:
        return api.read_namespaced_secret(self.resource_name, self.namespace)

    def create(self, api: CoreV1Api) -> Any:
        return api.create_namespaced_secret(self.namespace, self.body)


class EnsureConfigMap(ProvisionStep):
    """Ensure the registry-auth config map exists."""

    name = "ensure_config_map"

    def __init__(self, namespace: str, body: V1ConfigMap) -> None:
        super().__init__(namespace, body.metadata.name)
        self.body = body

    def read(self, api: CoreV1Api) -> Any:
        return api.read_namespaced_config_map(self.resource_name, self.namespace)

    def create(self, api: CoreV1Api) -> Any:
        return api.create_namespaced_config_map(self.namespace, self.body)


class EnsurePod(ProvisionStep):
    """Ensure the builder pod has been submitted."""

    name = "ensure_builder_pod"

    def __init__(self, namespace: str, body: V1Pod) -> None:
        super().__init__(namespace, body.metadata.name)
        self.body = body

    def read(self, api: CoreV1Api) -> Any:
        return api.read_namespaced_pod(self.resource_name, self.namespace)

    def create(self, api: CoreV1Api) -> Any:
        return api.create_namespaced_pod(self.namespace, self.body)


def run_pipeline(steps: Iterable[ProvisionStep], api: CoreV1Api) -> list[StepResult]:
    """Run steps in order, stopping after the first failed one.

    Args:
        steps: Steps to run.
        api: CoreV1Api bound to the target cluster.

    Returns:
        Results of the steps that ran; a failure, if any, is last.
    """
    results: list[StepResult] = []
    for step in steps:
        result = step.run(api)
        results.append(result)
        logger.info(
            "%s %s: %s", result.step, result.resource, result.outcome.value
        )
        if result.failed:
            break
    return results


__all__ = [
    "EnsureConfigMap",
    "EnsureNamespace",
    "EnsurePod",
    "EnsureSecret",
    "ProvisionStep",
    "StepResult",
    "run_pipeline",
]
