"""Read-only views of the Cluster and Plugin resources consumed by the ClusterScan controller."""

from typing import Any

from pydantic import Field

from kubescan.schemas.meta import Condition, KubeModel, LocalObjectReference, ObjectMeta, condition_is_true

CLUSTER_PLURAL = "clusters"
CLUSTER_KIND = "Cluster"
PLUGIN_PLURAL = "plugins"

CLUSTER_READY_CONDITION = "Ready"


class ClusterSpec(KubeModel):
    kubeconfig_ref: LocalObjectReference | None = None


class ClusterStatus(KubeModel):
    conditions: list[Condition] = Field(default_factory=list)


class Cluster(KubeModel):
    metadata: ObjectMeta
    spec: ClusterSpec = Field(default_factory=ClusterSpec)
    status: ClusterStatus = Field(default_factory=ClusterStatus)

    def is_ready(self) -> bool:
        return condition_is_true(self.status.conditions, CLUSTER_READY_CONDITION)

    def kubeconfig_ref_key(self) -> tuple[str, str] | None:
        """(namespace, name) of the kubeconfig Secret; it lives next to the Cluster."""
        if self.spec.kubeconfig_ref is None:
            return None
        return (self.metadata.namespace or "default", self.spec.kubeconfig_ref.name)


class PluginSpec(KubeModel):
    """Container definition of a scanner plugin."""

    image: str = Field(..., min_length=1)
    command: list[str] = Field(default_factory=list)
    args: list[str] = Field(default_factory=list)
    env: list[dict[str, Any]] = Field(default_factory=list)
    resources: dict[str, Any] | None = None
    security_context: dict[str, Any] | None = None


class Plugin(KubeModel):
    metadata: ObjectMeta
    spec: PluginSpec
