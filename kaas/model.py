import re
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# names are reused for Services, which need DNS-1035 labels (leading letter)
DNS_LABEL = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")


def _check_dns_label(value: str) -> str:
    if len(value) > 63 or not DNS_LABEL.match(value):
        raise ValueError(f"{value!r} is not a valid DNS-1035 label")
    return value


class AppRequest(BaseModel):
    name: str
    replicas: int = Field(1, ge=0)
    image: str
    image_tag: str = "latest"
    domain_address: Optional[str] = None
    port: int = Field(..., ge=1, le=65535)
    # CPU,RAM,DISK respectively, e.g. "500m,128Mi,1Gi"
    resources: str
    envs: Dict[str, str] = {}
    secrets: Dict[str, str] = {}
    external_access: bool = False

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _check_dns_label(value)

    @model_validator(mode="after")
    def check_consistency(self):
        if self.external_access and not self.domain_address:
            raise ValueError("domain_address is required when external_access is set")
        if not self.external_access and self.domain_address:
            raise ValueError("domain_address is only allowed with external_access")
        shared = set(self.envs) & set(self.secrets)
        if shared:
            raise ValueError(f"keys defined in both envs and secrets: {sorted(shared)}")
        return self

    @property
    def image_ref(self) -> str:
        return f"{self.image}:{self.image_tag}" if self.image_tag else self.image


class DBRequest(BaseModel):
    name: str
    # CPU,RAM[,DISK]
    resources: str
    external_access: bool = False

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _check_dns_label(value)

    @property
    def secret_name(self) -> str:
        return f"{self.name}-secret"


class PodStatus(BaseModel):
    name: str
    phase: Optional[str] = None
    hostIP: Optional[str] = None
    podIP: Optional[str] = None
    startTime: Optional[datetime] = None


class AppStatus(BaseModel):
    deployment_name: str
    namespace: str
    replicas: int = 0
    ready_replicas: int = 0
    pod_statuses: List[PodStatus] = []
    err_msg: Optional[str] = None


class AllAppsStatus(BaseModel):
    apps: List[AppStatus] = []
