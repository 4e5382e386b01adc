import pytest

from kaas import translator
from kaas.errors import ValidationError
from kaas.model import DBRequest
from conftest import NAMESPACE, app_request


@pytest.mark.parametrize("resources", ["500m,128Mi,1Gi", "2,1G,10Gi", " 0.5 , 256Mi , 512Mi "])
def test_requests_equal_limits(resources):
    deployment = translator.build_deployment(app_request(resources=resources), NAMESPACE)
    container_resources = deployment.spec.template.spec.containers[0].resources
    assert container_resources.requests == container_resources.limits
    assert set(container_resources.requests) == {"cpu", "memory", "ephemeral-storage"}


@pytest.mark.parametrize("resources", ["500m,128Mi", "500m,128Mi,1Gi,1Gi", ""])
def test_app_resources_need_three_parts(resources):
    with pytest.raises(ValidationError) as excinfo:
        translator.build_deployment(app_request(resources=resources), NAMESPACE)
    assert excinfo.value.name == "web"


@pytest.mark.parametrize("resources", ["lots,128Mi,1Gi", "500m,12XB,1Gi", "500m,-1Gi,1Gi"])
def test_unparsable_quantity(resources):
    with pytest.raises(ValidationError):
        translator.build_deployment(app_request(resources=resources), NAMESPACE)


def test_deployment_shape():
    appreq = app_request(replicas=0, image="registry.local/shop", image_tag="1.2")
    deployment = translator.build_deployment(appreq, NAMESPACE)

    assert deployment.metadata.name == "web"
    assert deployment.metadata.namespace == NAMESPACE
    assert deployment.spec.replicas == 0
    assert deployment.spec.selector.match_labels == {"app": "web"}
    assert deployment.spec.template.metadata.labels == {"app": "web"}
    container = deployment.spec.template.spec.containers[0]
    assert container.name == "web"
    assert container.image == "registry.local/shop:1.2"
    assert container.ports[0].container_port == 80


def test_env_literals_first_then_secret_refs():
    appreq = app_request(envs={"MODE": "prod", "DEBUG": "0"}, secrets={"API_KEY": "shop-keys"})
    env = translator.build_env(appreq)

    assert [var.name for var in env] == ["MODE", "DEBUG", "API_KEY"]
    assert env[0].value == "prod"
    ref = env[2].value_from.secret_key_ref
    assert (ref.name, ref.key) == ("shop-keys", "API_KEY")
    assert env[2].value is None


def test_service_shape():
    service = translator.build_service("web", NAMESPACE, 8080, "NodePort")
    assert service.spec.type == "NodePort"
    assert service.spec.selector == {"app": "web"}
    assert service.spec.ports[0].port == 8080
    assert service.spec.ports[0].target_port == 8080


def test_statefulset_uses_configured_storage_without_disk_part(settings):
    statefulset = translator.build_statefulset(DBRequest(name="orders", resources="1,2Gi"), settings)

    assert statefulset.spec.replicas == settings.db_replicas
    assert statefulset.spec.service_name == "orders"
    claim = statefulset.spec.volume_claim_templates[0]
    assert claim.spec.resources.requests == {"storage": "2Gi"}
    container = statefulset.spec.template.spec.containers[0]
    assert container.image == "postgres:16"
    assert container.resources.requests == container.resources.limits == {"cpu": "1", "memory": "2Gi"}
    assert container.args == ["-c", "max_connections=50"]


def test_statefulset_reads_credentials_from_secret(settings):
    statefulset = translator.build_statefulset(DBRequest(name="orders", resources="1,2Gi,20Gi"), settings)

    container = statefulset.spec.template.spec.containers[0]
    refs = {var.name: var.value_from.secret_key_ref for var in container.env if var.value_from}
    assert refs["POSTGRES_USER"].name == "orders-secret"
    assert refs["POSTGRES_USER"].key == "username"
    assert refs["POSTGRES_PASSWORD"].key == "password"
    assert statefulset.spec.volume_claim_templates[0].spec.resources.requests == {"storage": "20Gi"}


@pytest.mark.parametrize("resources", ["1", "1,2Gi,20Gi,1"])
def test_database_resources_need_two_or_three_parts(settings, resources):
    with pytest.raises(ValidationError):
        translator.build_statefulset(DBRequest(name="orders", resources=resources), settings)
