"""Pure mapping from request intents to Kubernetes object specs.

Nothing here talks to the cluster. Requests always equal limits, so every
workload gets a guaranteed slice with no burst headroom.
"""
from typing import Dict, List, Optional

from kubernetes import client
from kubernetes.utils.quantity import parse_quantity

from kaas.config import Settings
from kaas.errors import ValidationError
from kaas.model import AppRequest, DBRequest

DB_CONTAINER_NAME = "postgres"
DB_DATA_VOLUME = "data"
DB_DATA_PATH = "/var/lib/postgresql/data"


def selector_labels(name: str) -> Dict[str, str]:
    return {"app": name}


def parse_resources(name: str, spec: str, min_parts: int, max_parts: int) -> List[str]:
    parts = [part.strip() for part in spec.split(",")]
    if not min_parts <= len(parts) <= max_parts:
        expected = str(max_parts) if min_parts == max_parts else f"{min_parts}-{max_parts}"
        raise ValidationError(name, f"expected {expected} parts for resources, got {len(parts)}")

    for part in parts:
        try:
            value = parse_quantity(part)
        except ValueError:
            raise ValidationError(name, f"invalid resource quantity {part!r}")
        if value < 0:
            raise ValidationError(name, f"resource quantity {part!r} must not be negative")
    return parts


def resource_requirements(quantities: Dict[str, str]) -> client.V1ResourceRequirements:
    return client.V1ResourceRequirements(requests=dict(quantities), limits=dict(quantities))


def _secret_env(env_name: str, secret_name: str, key: str) -> client.V1EnvVar:
    return client.V1EnvVar(
        name=env_name,
        value_from=client.V1EnvVarSource(
            secret_key_ref=client.V1SecretKeySelector(name=secret_name, key=key)
        )
    )


def build_env(appreq: AppRequest) -> List[client.V1EnvVar]:
    env = [client.V1EnvVar(name=key, value=value) for key, value in appreq.envs.items()]
    # resolved by the kubelet when the pod starts
    env += [_secret_env(key, secret_name, key) for key, secret_name in appreq.secrets.items()]
    return env


def build_deployment(appreq: AppRequest, namespace: str) -> client.V1Deployment:
    cpu, memory, disk = parse_resources(appreq.name, appreq.resources, 3, 3)

    container = client.V1Container(
        name=appreq.name,
        image=appreq.image_ref,
        image_pull_policy="IfNotPresent",
        ports=[client.V1ContainerPort(container_port=appreq.port)],
        resources=resource_requirements({"cpu": cpu, "memory": memory, "ephemeral-storage": disk}),
        env=build_env(appreq)
    )

    template = client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(labels=selector_labels(appreq.name)),
        spec=client.V1PodSpec(containers=[container])
    )

    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(name=appreq.name, namespace=namespace),
        spec=client.V1DeploymentSpec(
            replicas=appreq.replicas,
            template=template,
            selector=client.V1LabelSelector(match_labels=selector_labels(appreq.name))
        )
    )


def build_service(name: str, namespace: str, port: int, service_type: str) -> client.V1Service:
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1ServiceSpec(
            selector=selector_labels(name),
            ports=[client.V1ServicePort(port=port, target_port=port)],
            type=service_type
        )
    )


def build_statefulset(dbreq: DBRequest, settings: Settings,
                      parts: Optional[List[str]] = None) -> client.V1StatefulSet:
    """StatefulSet for a database; credentials are read from the issued secret."""
    if parts is None:
        parts = parse_resources(dbreq.name, dbreq.resources, 2, 3)
    cpu, memory = parts[0], parts[1]
    storage = parts[2] if len(parts) == 3 else settings.db_storage_size

    container = client.V1Container(
        name=DB_CONTAINER_NAME,
        image=settings.db_image,
        image_pull_policy=settings.db_pull_policy,
        args=["-c", f"max_connections={settings.db_max_connections}"],
        ports=[client.V1ContainerPort(container_port=settings.db_port)],
        env=[
            client.V1EnvVar(name="POSTGRES_DB", value=dbreq.name),
            _secret_env("POSTGRES_USER", dbreq.secret_name, "username"),
            _secret_env("POSTGRES_PASSWORD", dbreq.secret_name, "password"),
        ],
        resources=resource_requirements({"cpu": cpu, "memory": memory}),
        volume_mounts=[client.V1VolumeMount(name=DB_DATA_VOLUME, mount_path=DB_DATA_PATH)]
    )

    volume_claim = client.V1PersistentVolumeClaim(
        metadata=client.V1ObjectMeta(name=DB_DATA_VOLUME),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=["ReadWriteOnce"],
            resources=client.V1VolumeResourceRequirements(requests={"storage": storage})
        )
    )

    return client.V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=client.V1ObjectMeta(name=dbreq.name, namespace=settings.namespace),
        spec=client.V1StatefulSetSpec(
            service_name=dbreq.name,
            replicas=settings.db_replicas,
            selector=client.V1LabelSelector(match_labels=selector_labels(dbreq.name)),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=selector_labels(dbreq.name)),
                spec=client.V1PodSpec(containers=[container])
            ),
            volume_claim_templates=[volume_claim]
        )
    )
