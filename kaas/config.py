import logging
import os
from enum import Enum
from typing import Dict, Optional

from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.config import ConfigException
from pydantic import BaseModel, ConfigDict

APP_CONFIG_MAP = "kaas-config"
DB_CONFIG_MAP = "db-request-config"

logger = logging.getLogger(__name__)


class ExposurePolicy(str, Enum):
    """How an externally reachable service is exposed."""
    NODE_PORT = "node-port"
    LOAD_BALANCER = "load-balancer"
    INGRESS = "ingress"

    def service_type(self, external: bool) -> str:
        if not external:
            return "ClusterIP"
        return {
            ExposurePolicy.NODE_PORT: "NodePort",
            ExposurePolicy.LOAD_BALANCER: "LoadBalancer",
            ExposurePolicy.INGRESS: "ClusterIP",
        }[self]


class Settings(BaseModel):
    """Process-wide configuration, loaded once at startup and never mutated."""
    model_config = ConfigDict(frozen=True)

    namespace: str = "default"
    ingress_name: str = "kaas-ingress"
    ingress_class_name: Optional[str] = None
    exposure_policy: ExposurePolicy = ExposurePolicy.NODE_PORT
    routing_update_attempts: int = 3

    db_replicas: int = 1
    db_max_connections: int = 100
    db_port: int = 5432
    db_storage_size: str = "1Gi"
    db_image: str = "postgres:16"
    db_pull_policy: str = "IfNotPresent"

    @classmethod
    def from_config_maps(cls, core_api: client.CoreV1Api, namespace: str = "default") -> "Settings":
        app_conf = _read_config_map(core_api, APP_CONFIG_MAP, namespace)
        db_conf = _read_config_map(core_api, DB_CONFIG_MAP, namespace)

        values = {
            "namespace": app_conf.get("namespace"),
            "ingress_name": app_conf.get("ingress.name"),
            "ingress_class_name": app_conf.get("ingress.className"),
            "exposure_policy": app_conf.get("exposure.policy"),
            "routing_update_attempts": app_conf.get("routing.updateAttempts"),
            "db_replicas": db_conf.get("replica"),
            "db_max_connections": db_conf.get("maxConnections"),
            "db_port": db_conf.get("port"),
            "db_storage_size": db_conf.get("pvcSize"),
            "db_image": db_conf.get("image.repository"),
            "db_pull_policy": db_conf.get("image.pullPolicy"),
        }
        # missing keys fall back to the defaults above
        return cls(**{key: value for key, value in values.items() if value})


def _read_config_map(core_api: client.CoreV1Api, name: str, namespace: str) -> Dict[str, str]:
    try:
        config_map = core_api.read_namespaced_config_map(name=name, namespace=namespace)
    except ApiException as e:
        logger.error(f"Could not read config map {namespace}/{name}: {e.reason}")
        raise
    return config_map.data or {}


def load_kube_config():
    """Use the service account when running in a pod, the local kubeconfig otherwise."""
    try:
        config.load_incluster_config()
    except ConfigException:
        logger.info("Not running in cluster, falling back to kubeconfig")
        config.load_kube_config()


def load_settings() -> Settings:
    load_kube_config()
    namespace = os.getenv("KAAS_CONFIG_NAMESPACE", "default")
    settings = Settings.from_config_maps(client.CoreV1Api(), namespace)
    logger.info(f"Loaded settings for namespace {settings.namespace}")
    return settings
