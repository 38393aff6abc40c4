"""Kubernetes API response schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class KubernetesBaseModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class ManagedFieldsEntryModel(KubernetesBaseModel):
    manager: str = ""
    operation: str | None = None
    api_version: str | None = Field(default=None, alias="apiVersion")
    time: str | None = None
    fields_type: str | None = Field(default=None, alias="fieldsType")
    fields_v1: dict[str, object] | None = Field(default=None, alias="fieldsV1")
    subresource: str | None = None


class ObjectMetaModel(KubernetesBaseModel):
    name: str
    namespace: str | None = None
    uid: str | None = None
    resource_version: str | None = Field(default=None, alias="resourceVersion")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    managed_fields: list[ManagedFieldsEntryModel] = Field(
        default_factory=list, alias="managedFields"
    )


class KubernetesObjectModel(KubernetesBaseModel):
    api_version: str = Field(alias="apiVersion")
    kind: str
    metadata: ObjectMetaModel


class StatusCause(KubernetesBaseModel):
    reason: str | None = None
    message: str = ""
    field: str | None = None


class StatusDetails(KubernetesBaseModel):
    name: str | None = None
    group: str | None = None
    kind: str | None = None
    causes: list[StatusCause] = Field(default_factory=list)


class StatusModel(KubernetesBaseModel):
    """``metav1.Status`` body returned with failed requests."""

    kind: str = "Status"
    status: str | None = None
    message: str = ""
    reason: str = ""
    code: int | None = None
    details: StatusDetails | None = None


class APIResourceModel(KubernetesBaseModel):
    name: str
    singular_name: str = Field(default="", alias="singularName")
    namespaced: bool
    kind: str
    verbs: list[str] = Field(default_factory=list)

    @property
    def is_subresource(self) -> bool:
        return "/" in self.name


class APIResourceListModel(KubernetesBaseModel):
    group_version: str = Field(alias="groupVersion")
    resources: list[APIResourceModel] = Field(default_factory=list)
