"""Pydantic schemas for normalized issues: plugin-agnostic IssueSpec and the persisted ClusterIssue."""

from enum import Enum

from pydantic import Field, model_validator

from kubescan.schemas.clusterscan import GROUP, VERSION
from kubescan.schemas.meta import KubeModel, ObjectMeta

CLUSTER_ISSUE_KIND = "ClusterIssue"
CLUSTER_ISSUE_PLURAL = "clusterissues"

LABEL_SCAN_ID = f"{GROUP}/scanID"
LABEL_CLUSTER = f"{GROUP}/cluster"
LABEL_SEVERITY = f"{GROUP}/severity"
LABEL_ISSUE_ID = f"{GROUP}/id"
LABEL_CATEGORY = f"{GROUP}/category"
LABEL_PLUGIN = f"{GROUP}/plugin"


class Severity(str, Enum):
    UNKNOWN = "Unknown"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class IssueSpec(KubeModel):
    """One detected problem, deduplicated by code within a single report."""

    id: str = Field(..., min_length=1, description="Lowercased plugin issue code, e.g. pop-400.")
    message: str = Field(..., description="Generic description; free text only when no generic one is known.")
    severity: Severity = Field(default=Severity.UNKNOWN)
    category: str = Field(default="", description="Issue category, e.g. Container or Security.")
    resources: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Affected resource type (group/version/resource) -> resource names.",
    )
    total_resources: int = Field(default=0, ge=0)
    url: str = Field(default="", description="Documentation URL; empty when unknown.")
    cluster: str = Field(default="", description="Name of the scanned cluster; set at materialization.")

    def add_resource(self, resource_type: str, resource_name: str) -> None:
        self.resources.setdefault(resource_type, []).append(resource_name)
        self.total_resources += 1


class ClusterIssue(KubeModel):
    """Persisted, labeled form of an IssueSpec, owned by the Job that produced it."""

    metadata: ObjectMeta
    spec: IssueSpec

    @model_validator(mode="after")
    def check_name(self) -> "ClusterIssue":
        if not self.metadata.name:
            raise ValueError("ClusterIssue must have a name")
        return self

    def to_manifest(self) -> dict:
        body = self.to_json_dict()
        body["apiVersion"] = f"{GROUP}/{VERSION}"
        body["kind"] = CLUSTER_ISSUE_KIND
        return body
