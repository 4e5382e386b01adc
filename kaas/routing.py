"""Accumulates host rules on the namespace's single shared Ingress."""
import logging
from typing import List, Optional

from kubernetes import client

from kaas.errors import ConflictError, UpstreamError
from kaas.kub import KubernetesClient

PLACEHOLDER_SERVICE = "kaas-default-backend"
PLACEHOLDER_PORT = 80

logger = logging.getLogger(__name__)


def _path(service_name: str, port: int) -> client.V1HTTPIngressPath:
    return client.V1HTTPIngressPath(
        path="/",
        path_type="Prefix",
        backend=client.V1IngressBackend(
            service=client.V1IngressServiceBackend(
                name=service_name,
                port=client.V1ServiceBackendPort(number=port)
            )
        )
    )


def host_rule(host: str, service_name: str, port: int) -> client.V1IngressRule:
    return client.V1IngressRule(
        host=host,
        http=client.V1HTTPIngressRuleValue(paths=[_path(service_name, port)])
    )


def placeholder_rule() -> client.V1IngressRule:
    # host-less catch-all, only present until the first real rule lands
    return client.V1IngressRule(
        http=client.V1HTTPIngressRuleValue(paths=[_path(PLACEHOLDER_SERVICE, PLACEHOLDER_PORT)])
    )


def is_placeholder(rule: client.V1IngressRule) -> bool:
    if rule.host or rule.http is None:
        return False
    return all(path.backend.service is not None and path.backend.service.name == PLACEHOLDER_SERVICE
               for path in rule.http.paths)


class RoutingAccumulator:
    def __init__(self, kube: KubernetesClient, ingress_name: str, ingress_class_name: Optional[str] = None,
                 max_attempts: int = 3):
        self.kube = kube
        self.ingress_name = ingress_name
        self.ingress_class_name = ingress_class_name
        self.max_attempts = max(1, max_attempts)

    def ensure(self) -> client.V1Ingress:
        """Return the shared Ingress, creating it with a placeholder rule if absent."""
        ingress = self.kube.get("ingress", self.ingress_name)
        if ingress is not None:
            return ingress

        body = client.V1Ingress(
            api_version="networking.k8s.io/v1",
            kind="Ingress",
            metadata=client.V1ObjectMeta(name=self.ingress_name, namespace=self.kube.namespace),
            spec=client.V1IngressSpec(
                ingress_class_name=self.ingress_class_name,
                rules=[placeholder_rule()]
            )
        )
        try:
            return self.kube.create("ingress", body)
        except UpstreamError as e:
            if e.status != 409:
                raise
            # created concurrently by another request
            logger.info(f"Ingress {self.ingress_name} appeared while creating it, re-reading")
            ingress = self.kube.get("ingress", self.ingress_name)
            if ingress is None:
                raise UpstreamError(self.ingress_name, "ingress was deleted while being created",
                                    "read", "ingress", 404)
            return ingress

    def add_rule(self, host: str, service_name: str, port: int) -> client.V1Ingress:
        """Append one host rule, keeping every existing rule in place and in order.

        The replace carries the resource version of the read, so a concurrent
        writer makes it fail with 409 instead of silently dropping a rule. On
        such a conflict the ingress is read again and the append re-applied.
        """
        rule = host_rule(host, service_name, port)
        for attempt in range(1, self.max_attempts + 1):
            ingress = self.ensure()
            ingress.spec.rules = self._append(ingress.spec.rules or [], rule)
            try:
                updated = self.kube.replace("ingress", self.ingress_name, ingress)
            except UpstreamError as e:
                if e.status != 409:
                    raise
                logger.warning(f"Ingress {self.ingress_name} changed concurrently "
                               f"(attempt {attempt}/{self.max_attempts})")
                continue
            logger.info(f"Ingress rule {host} -> {service_name}:{port} added to {self.ingress_name}")
            return updated

        raise ConflictError(service_name, f"ingress {self.ingress_name} kept changing, "
                                          f"rule for {host} not added after {self.max_attempts} attempts")

    @staticmethod
    def _append(rules: List[client.V1IngressRule], rule: client.V1IngressRule) -> List[client.V1IngressRule]:
        return [existing for existing in rules if not is_placeholder(existing)] + [rule]
