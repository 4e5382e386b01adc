"""Pytest configuration and shared fixtures.

FakeCluster stands in for the API server: it keeps objects in insertion order,
deep-copies on the way in and out, assigns resource versions and answers with
the same ApiException statuses (404, 409) the real server does.
"""

import copy
import re
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from kubernetes import client
from kubernetes.client import ApiException

from kaas.config import Settings
from kaas.engine import ClusterManager
from kaas.kub import KubernetesClient
from kaas.model import AppRequest

NAMESPACE = "kaas"


def _matches(obj, label_selector):
    if not label_selector:
        return True
    labels = obj.metadata.labels or {}
    for term in re.split(r",(?![^()]*\))", label_selector):
        term = term.strip()
        set_term = re.match(r"^(\S+) (in|notin) \((.*)\)$", term)
        if set_term:
            key, operator, values = set_term.groups()
            present = labels.get(key) in values.split(",")
            if present != (operator == "in"):
                return False
        elif term.startswith("!"):
            if term[1:] in labels:
                return False
        elif "=" in term:
            key, _, value = term.partition("=")
            if labels.get(key) != value:
                return False
        elif term not in labels:
            return False
    return True


class FakeCluster:
    def __init__(self):
        self.objects = {}
        self.calls = []
        self.fail = {}
        self.before_replace = None
        self._version = 0

    def _check(self, operation, kind, name=None):
        self.calls.append((operation, kind))
        status = self.fail.get((operation, kind, name)) or self.fail.get((operation, kind))
        if status:
            raise ApiException(status=status, reason="Injected failure")

    def _bump(self, obj):
        self._version += 1
        obj.metadata.resource_version = str(self._version)

    def put(self, kind, obj, namespace=NAMESPACE):
        obj.metadata.namespace = namespace
        self._bump(obj)
        self.objects[(kind, namespace, obj.metadata.name)] = obj
        return obj

    def stored(self, kind, name, namespace=NAMESPACE):
        return self.objects.get((kind, namespace, name))

    def read(self, kind, name, namespace):
        self._check("read", kind, name)
        obj = self.stored(kind, name, namespace)
        if obj is None:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(obj)

    def create(self, kind, namespace, body):
        self._check("create", kind, body.metadata.name)
        if self.stored(kind, body.metadata.name, namespace) is not None:
            raise ApiException(status=409, reason="AlreadyExists")
        return copy.deepcopy(self.put(kind, copy.deepcopy(body), namespace))

    def replace(self, kind, name, namespace, body):
        self._check("replace", kind, name)
        if self.before_replace is not None:
            self.before_replace()
        current = self.stored(kind, name, namespace)
        if current is None:
            raise ApiException(status=404, reason="Not Found")
        if body.metadata.resource_version != current.metadata.resource_version:
            raise ApiException(status=409, reason="Conflict")
        return copy.deepcopy(self.put(kind, copy.deepcopy(body), namespace))

    def list(self, kind, namespace, label_selector=None):
        self._check("list", kind)
        items = [copy.deepcopy(obj) for (k, ns, _), obj in self.objects.items()
                 if k == kind and ns == namespace and _matches(obj, label_selector)]
        return SimpleNamespace(items=items)


def _bind(api_cls, kind, suffix, operations=("read", "create", "list", "replace")):
    if "read" in operations:
        setattr(api_cls, f"read_namespaced_{suffix}",
                lambda self, name, namespace: self.cluster.read(kind, name, namespace))
    if "create" in operations:
        setattr(api_cls, f"create_namespaced_{suffix}",
                lambda self, namespace, body: self.cluster.create(kind, namespace, body))
    if "list" in operations:
        setattr(api_cls, f"list_namespaced_{suffix}",
                lambda self, namespace, label_selector=None: self.cluster.list(kind, namespace, label_selector))
    if "replace" in operations:
        setattr(api_cls, f"replace_namespaced_{suffix}",
                lambda self, name, namespace, body: self.cluster.replace(kind, name, namespace, body))


class FakeApi:
    def __init__(self, cluster):
        self.cluster = cluster


class FakeAppsApi(FakeApi):
    pass


class FakeCoreApi(FakeApi):
    pass


class FakeNetworkingApi(FakeApi):
    pass


_bind(FakeAppsApi, "deployment", "deployment")
_bind(FakeAppsApi, "statefulset", "stateful_set")
_bind(FakeCoreApi, "service", "service")
_bind(FakeCoreApi, "secret", "secret", ("read", "create"))
_bind(FakeCoreApi, "pod", "pod", ("list",))
_bind(FakeCoreApi, "configmap", "config_map", ("read",))
_bind(FakeNetworkingApi, "ingress", "ingress")


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def kube(cluster):
    return KubernetesClient(NAMESPACE, apps_api=FakeAppsApi(cluster), core_api=FakeCoreApi(cluster),
                            networking_api=FakeNetworkingApi(cluster))


@pytest.fixture
def settings():
    return Settings(namespace=NAMESPACE, ingress_name="kaas-ingress", db_replicas=2, db_port=5432,
                    db_storage_size="2Gi", db_image="postgres:16", db_max_connections=50)


@pytest.fixture
def manager(settings, kube):
    return ClusterManager(settings, kube)


def app_request(**overrides):
    values = {
        "name": "web",
        "replicas": 2,
        "image": "nginx",
        "image_tag": "latest",
        "port": 80,
        "resources": "500m,128Mi,1Gi",
        "external_access": False,
    }
    values.update(overrides)
    return AppRequest(**values)


def add_pod(cluster, app_name, pod_name, phase="Running"):
    pod = client.V1Pod(
        metadata=client.V1ObjectMeta(name=pod_name, labels={"app": app_name}),
        status=client.V1PodStatus(
            phase=phase,
            host_ip="10.0.0.1",
            pod_ip="172.16.0.5",
            start_time=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        )
    )
    return cluster.put("pod", pod)


def set_ready(cluster, app_name, ready):
    cluster.stored("deployment", app_name).status = client.V1DeploymentStatus(ready_replicas=ready)
