import logging
import time
from typing import List, Optional

from kubernetes import client
from kubernetes.client import ApiException
from prometheus_client import Counter, Histogram

from kaas.errors import UpstreamError

ORCHESTRATOR_ERROR_COUNT = Counter("kaas_orchestrator_error_count", "Total number of failed Kubernetes API calls",
                                   ["operation", "kind"])
ORCHESTRATOR_LATENCY = Histogram("kaas_orchestrator_latency_seconds", "Kubernetes API call latency in seconds",
                                 ["operation", "kind"],
                                 buckets=[0.1, 0.5, 1, 2, 5, 10, float("inf")])

logger = logging.getLogger(__name__)


class KubernetesClient:
    """Namespace-scoped CRUD over the handful of object kinds KaaS manages.

    A lookup of a missing object returns None; every other API failure is
    raised as UpstreamError naming the operation, kind and object.
    """

    def __init__(self, namespace: str, apps_api: Optional[client.AppsV1Api] = None,
                 core_api: Optional[client.CoreV1Api] = None,
                 networking_api: Optional[client.NetworkingV1Api] = None):
        self.namespace = namespace
        self.apps_api = apps_api or client.AppsV1Api()
        self.core_api = core_api or client.CoreV1Api()
        self.networking_api = networking_api or client.NetworkingV1Api()

        self.readers = {
            "deployment": self.apps_api.read_namespaced_deployment,
            "statefulset": self.apps_api.read_namespaced_stateful_set,
            "service": self.core_api.read_namespaced_service,
            "ingress": self.networking_api.read_namespaced_ingress,
            "secret": self.core_api.read_namespaced_secret,
        }
        self.creators = {
            "deployment": self.apps_api.create_namespaced_deployment,
            "statefulset": self.apps_api.create_namespaced_stateful_set,
            "service": self.core_api.create_namespaced_service,
            "ingress": self.networking_api.create_namespaced_ingress,
            "secret": self.core_api.create_namespaced_secret,
        }
        # secrets are only existence-checked and created, never listed or updated
        self.listers = {
            "deployment": self.apps_api.list_namespaced_deployment,
            "statefulset": self.apps_api.list_namespaced_stateful_set,
            "service": self.core_api.list_namespaced_service,
            "ingress": self.networking_api.list_namespaced_ingress,
        }
        self.replacers = {
            "deployment": self.apps_api.replace_namespaced_deployment,
            "statefulset": self.apps_api.replace_namespaced_stateful_set,
            "service": self.core_api.replace_namespaced_service,
            "ingress": self.networking_api.replace_namespaced_ingress,
        }

    def get(self, kind: str, name: str):
        method = self._method(self.readers, "read", kind)
        try:
            return self._invoke(method, "read", kind, name, name=name, namespace=self.namespace)
        except UpstreamError as e:
            if e.status == 404:
                return None
            raise

    def create(self, kind: str, body):
        name = body.metadata.name
        method = self._method(self.creators, "create", kind)
        created = self._invoke(method, "create", kind, name, namespace=self.namespace, body=body)
        logger.info(f"{kind.capitalize()} {self.namespace}/{name} created successfully.")
        return created

    def list(self, kind: str, label_selector: Optional[str] = None) -> List:
        method = self._method(self.listers, "list", kind)
        kwargs = {"namespace": self.namespace}
        if label_selector:
            kwargs["label_selector"] = label_selector
        return self._invoke(method, "list", kind, self.namespace, **kwargs).items

    def replace(self, kind: str, name: str, body):
        method = self._method(self.replacers, "replace", kind)
        return self._invoke(method, "replace", kind, name, name=name, namespace=self.namespace, body=body)

    def list_pods(self, label_selector: str) -> List[client.V1Pod]:
        # an empty selector would match every pod in the namespace
        if not label_selector:
            raise ValueError("a label selector is required to list pods")
        return self._invoke(self.core_api.list_namespaced_pod, "list", "pod", label_selector,
                            namespace=self.namespace, label_selector=label_selector).items

    @staticmethod
    def _method(methods, operation: str, kind: str):
        try:
            return methods[kind]
        except KeyError:
            raise ValueError(f"{operation} is not supported for {kind}")

    @staticmethod
    def _invoke(method, operation: str, kind: str, obj_name: str, **kwargs):
        start_time = time.time()
        try:
            return method(**kwargs)
        except ApiException as e:
            if e.status != 404:
                ORCHESTRATOR_ERROR_COUNT.labels(operation, kind).inc()
                logger.error(f"Exception when calling {operation} {kind} {obj_name}: {e.status} {e.reason}")
            raise UpstreamError(obj_name, e.reason or str(e), operation, kind, e.status) from e
        finally:
            ORCHESTRATOR_LATENCY.labels(operation, kind).observe(time.time() - start_time)
