"""Turns app and database requests into Kubernetes objects.

Provisioning is single shot: objects are created once and never reconciled.
Re-issuing a request for an existing name is rejected, and nothing created
before a failure is rolled back.
"""
import logging
from typing import List

from kaas.config import Settings
from kaas.credentials import issue_credential
from kaas.errors import ConflictError, PartialFailureError, UpstreamError
from kaas.kub import KubernetesClient
from kaas.model import AppRequest, AppStatus, DBRequest
from kaas.routing import RoutingAccumulator
from kaas.status import StatusAggregator
from kaas import translator

logger = logging.getLogger(__name__)


class ClusterManager:
    def __init__(self, settings: Settings, kube: KubernetesClient):
        self.settings = settings
        self.kube = kube
        self.routing = RoutingAccumulator(kube, settings.ingress_name, settings.ingress_class_name,
                                          settings.routing_update_attempts)
        self.status = StatusAggregator(kube)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClusterManager":
        return cls(settings, KubernetesClient(settings.namespace))

    def deploy_app(self, appreq: AppRequest):
        # translation is pure, so a bad request never reaches the cluster
        deployment = translator.build_deployment(appreq, self.settings.namespace)
        service_type = self.settings.exposure_policy.service_type(appreq.external_access)
        service = translator.build_service(appreq.name, self.settings.namespace, appreq.port, service_type)

        # check-then-act; a concurrent create surfaces as the API server's 409
        if self.kube.get("deployment", appreq.name) is not None:
            raise ConflictError(appreq.name, f"deployment {appreq.name} already exists")

        created: List[str] = []
        self.kube.create("deployment", deployment)
        created.append(f"deployment/{appreq.name}")
        try:
            self.kube.create("service", service)
            created.append(f"service/{appreq.name}")
            if appreq.external_access:
                self.routing.add_rule(appreq.domain_address, appreq.name, appreq.port)
        except UpstreamError as e:
            raise self._partial_failure(appreq.name, e, created)
        except ConflictError as e:
            raise self._partial_failure(appreq.name, UpstreamError(e.name, e.message, "update", "ingress", 409),
                                        created)

        logger.info(f"App {appreq.name} deployed ({service_type} service)")

    def deploy_database(self, dbreq: DBRequest) -> str:
        """Provision a database and return the name of its credential secret."""
        parts = translator.parse_resources(dbreq.name, dbreq.resources, 2, 3)
        statefulset = translator.build_statefulset(dbreq, self.settings, parts)
        service_type = self.settings.exposure_policy.service_type(dbreq.external_access)
        service = translator.build_service(dbreq.name, self.settings.namespace, self.settings.db_port,
                                           service_type)

        secret_name = dbreq.secret_name
        if self.kube.get("secret", secret_name) is not None:
            raise ConflictError(dbreq.name, f"database {dbreq.name} already exists")

        created: List[str] = []
        issue_credential(self.kube, dbreq.name, secret_name, self.settings.db_port)
        created.append(f"secret/{secret_name}")
        try:
            self.kube.create("statefulset", statefulset)
            created.append(f"statefulset/{dbreq.name}")
            self.kube.create("service", service)
        except UpstreamError as e:
            raise self._partial_failure(dbreq.name, e, created)

        logger.info(f"Database {dbreq.name} deployed ({service_type} service)")
        return secret_name

    def get_app_status(self, name: str) -> AppStatus:
        return self.status.get_app_status(name)

    def get_all_apps_status(self) -> List[AppStatus]:
        return self.status.get_all_apps_status()

    @staticmethod
    def _partial_failure(name: str, cause: UpstreamError, created: List[str]) -> PartialFailureError:
        logger.error(f"Deploying {name} failed after creating {', '.join(created)}; left in place")
        return PartialFailureError(name, cause, created)
