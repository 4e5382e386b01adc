import logging
import secrets
from dataclasses import dataclass

from kubernetes import client

from kaas.kub import KubernetesClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    username: str
    password: str
    host: str
    port: int


def generate_credential(name: str, namespace: str, port: int) -> Credential:
    # secrets draws from the OS CSPRNG and is safe to call from any thread
    return Credential(
        username=f"user-{secrets.token_hex(8)}",
        password=f"pass-{secrets.token_urlsafe(32)}",
        host=f"{name}.{namespace}.svc.cluster.local",
        port=port,
    )


def build_secret(secret_name: str, namespace: str, credential: Credential) -> client.V1Secret:
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        type="Opaque",
        metadata=client.V1ObjectMeta(name=secret_name, namespace=namespace),
        string_data={
            "username": credential.username,
            "password": credential.password,
            "host": credential.host,
            "port": str(credential.port),
        }
    )


def issue_credential(kube: KubernetesClient, name: str, secret_name: str, port: int) -> Credential:
    """Generate a fresh username/password pair and store it as a secret.

    The secret is never read back; workloads consume it through secretKeyRef.
    """
    credential = generate_credential(name, kube.namespace, port)
    kube.create("secret", build_secret(secret_name, kube.namespace, credential))
    logger.info(f"Credentials for {name} issued into secret {secret_name}")
    return credential
