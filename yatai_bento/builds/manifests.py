"""Kubernetes manifests for image builder workloads.

This module handles:
- The AWS shared-credentials secret read by the builder
- The docker config map selecting the ECR credential helper
- The run-to-completion builder pod

All functions are pure and return kubernetes client model objects.
"""

from __future__ import annotations

import json
from string import Template

from kubernetes.client import (
    V1ConfigMap,
    V1ConfigMapVolumeSource,
    V1Container,
    V1EnvVar,
    V1Namespace,
    V1ObjectMeta,
    V1Pod,
    V1PodSpec,
    V1Secret,
    V1SecretVolumeSource,
    V1Volume,
    V1VolumeMount,
)

from yatai_bento.types import StorageConfig

AWS_SECRET_NAME = "aws-secret"
AWS_SECRET_KEY = "credentials"
AWS_SECRET_MOUNT_PATH = "/root/.aws/"

DOCKER_CONFIG_NAME = "docker-config"
DOCKER_CONFIG_KEY = "config.json"
DOCKER_CONFIG_MOUNT_PATH = "/kaniko/.docker/"
ECR_CREDENTIAL_HELPER = "ecr-login"

BUILDER_CONTAINER_NAME = "builder"
DOCKERFILE_PATH = "./Dockerfile"

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "yatai-bento"
BENTO_VERSION_ID_LABEL = "yatai.ai/bento-version-id"

AWS_CREDENTIALS_TEMPLATE = Template(
    "[default]\n"
    "aws_access_key_id = ${access_key_id}\n"
    "aws_secret_access_key = ${secret_access_key}\n"
)


def render_aws_credentials(storage: StorageConfig) -> str:
    """Render an AWS shared-credentials file for the builder."""
    return AWS_CREDENTIALS_TEMPLATE.substitute(
        access_key_id=storage.access_key_id,
        secret_access_key=storage.secret_access_key,
    )


def render_docker_config() -> str:
    """Render a docker config.json that pushes through the ECR helper."""
    return json.dumps({"credsStore": ECR_CREDENTIAL_HELPER})


def namespace_manifest(name: str) -> V1Namespace:
    """Build a namespace manifest."""
    return V1Namespace(metadata=V1ObjectMeta(name=name))


def aws_secret_manifest(storage: StorageConfig) -> V1Secret:
    """Build the secret holding the builder's object store credentials."""
    return V1Secret(
        metadata=V1ObjectMeta(name=AWS_SECRET_NAME),
        string_data={AWS_SECRET_KEY: render_aws_credentials(storage)},
    )


def docker_config_manifest() -> V1ConfigMap:
    """Build the config map holding the builder's docker config."""
    return V1ConfigMap(
        metadata=V1ObjectMeta(name=DOCKER_CONFIG_NAME),
        data={DOCKER_CONFIG_KEY: render_docker_config()},
    )


def builder_args(context_uri: str, destination: str) -> list[str]:
    """Return the builder command-line arguments.

    Args:
        context_uri: s3:// URI of the uploaded archive.
        destination: Image reference to push.

    Returns:
        Argument list for the builder container.
    """
    return [
        f"--dockerfile={DOCKERFILE_PATH}",
        f"--context={context_uri}",
        f"--destination={destination}",
    ]


def builder_pod_manifest(
    name: str,
    builder_image: str,
    context_uri: str,
    destination: str,
    region: str,
    version_id: int | None = None,
) -> V1Pod:
    """Build the one-shot pod that builds and pushes a Bento image.

    The pod never restarts; a failed build stays failed for out-of-band
    observers to pick up.

    Args:
        name: Pod name (see naming.image_builder_kube_name).
        builder_image: Image of the Dockerfile-context builder.
        context_uri: s3:// URI of the uploaded archive.
        destination: Image reference to push.
        region: Object store region exported as AWS_REGION.
        version_id: Optional BentoVersion ID recorded as a label.

    Returns:
        V1Pod manifest.
    """
    labels = {MANAGED_BY_LABEL: MANAGED_BY_VALUE}
    if version_id is not None:
        labels[BENTO_VERSION_ID_LABEL] = str(version_id)

    container = V1Container(
        name=BUILDER_CONTAINER_NAME,
        image=builder_image,
        args=builder_args(context_uri, destination),
        volume_mounts=[
            V1VolumeMount(name=DOCKER_CONFIG_NAME, mount_path=DOCKER_CONFIG_MOUNT_PATH),
            V1VolumeMount(name=AWS_SECRET_NAME, mount_path=AWS_SECRET_MOUNT_PATH),
        ],
        env=[V1EnvVar(name="AWS_REGION", value=region)],
    )

    return V1Pod(
        metadata=V1ObjectMeta(name=name, labels=labels),
        spec=V1PodSpec(
            restart_policy="Never",
            volumes=[
                V1Volume(
                    name=DOCKER_CONFIG_NAME,
                    config_map=V1ConfigMapVolumeSource(name=DOCKER_CONFIG_NAME),
                ),
                V1Volume(
                    name=AWS_SECRET_NAME,
                    secret=V1SecretVolumeSource(secret_name=AWS_SECRET_NAME),
                ),
            ],
            containers=[container],
        ),
    )


__all__ = [
    "AWS_SECRET_NAME",
    "DOCKER_CONFIG_NAME",
    "aws_secret_manifest",
    "builder_args",
    "builder_pod_manifest",
    "docker_config_manifest",
    "namespace_manifest",
    "render_aws_credentials",
    "render_docker_config",
]
