import logging
from typing import List

from kubernetes import client

from kaas.errors import KaasError, NotFoundError
from kaas.kub import KubernetesClient
from kaas.model import AppStatus, PodStatus

logger = logging.getLogger(__name__)


def _expression(requirement: client.V1LabelSelectorRequirement) -> str:
    key, operator = requirement.key, requirement.operator
    if operator == "Exists":
        return key
    if operator == "DoesNotExist":
        return f"!{key}"
    values = ",".join(requirement.values or [])
    return f"{key} {operator.lower()} ({values})"


def selector_string(deployment: client.V1Deployment) -> str:
    selector = deployment.spec.selector
    terms = []
    if selector is not None:
        terms += [f"{key}={value}" for key, value in sorted((selector.match_labels or {}).items())]
        terms += [_expression(requirement) for requirement in selector.match_expressions or []]
    if not terms:
        # never list the whole namespace
        terms = [f"app={deployment.metadata.name}"]
    return ",".join(terms)


def pod_status(pod: client.V1Pod) -> PodStatus:
    status = pod.status or client.V1PodStatus()
    return PodStatus(
        name=pod.metadata.name,
        phase=status.phase,
        hostIP=status.host_ip,
        podIP=status.pod_ip,
        startTime=status.start_time
    )


class StatusAggregator:
    def __init__(self, kube: KubernetesClient):
        self.kube = kube

    def get_app_status(self, name: str) -> AppStatus:
        deployment = self.kube.get("deployment", name)
        if deployment is None:
            raise NotFoundError(name, f"deployment {name} not found")

        pods = self.kube.list_pods(selector_string(deployment))

        # counts come from the deployment itself and may lag the pod list
        ready_replicas = deployment.status.ready_replicas if deployment.status else None
        return AppStatus(
            deployment_name=deployment.metadata.name,
            namespace=deployment.metadata.namespace or self.kube.namespace,
            replicas=deployment.spec.replicas or 0,
            ready_replicas=ready_replicas or 0,
            pod_statuses=[pod_status(pod) for pod in pods]
        )

    def get_all_apps_status(self) -> List[AppStatus]:
        """One record per deployment in listing order; failed lookups carry err_msg."""
        statuses = []
        for deployment in self.kube.list("deployment"):
            name = deployment.metadata.name
            try:
                statuses.append(self.get_app_status(name))
            except KaasError as e:
                logger.info(f"Could not get status of {name}: {e}")
                statuses.append(AppStatus(
                    deployment_name=name,
                    namespace=deployment.metadata.namespace or self.kube.namespace,
                    err_msg=str(e)
                ))
        return statuses
