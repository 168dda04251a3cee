"""Turn IssueSpecs into labeled ClusterIssue records owned by the plugin Job, and create them."""

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from kubescan.core.errors import ConflictError, InvalidRunIdError, KubeApiError, MaterializationError
from kubescan.schemas.issues import (
    LABEL_CATEGORY,
    LABEL_CLUSTER,
    LABEL_ISSUE_ID,
    LABEL_PLUGIN,
    LABEL_SCAN_ID,
    LABEL_SEVERITY,
    ClusterIssue,
    IssueSpec,
)
from kubescan.schemas.meta import ObjectMeta, OwnerReference

if TYPE_CHECKING:
    from kubescan.services.gateway import KubeGateway

logger = logging.getLogger(__name__)


class MaterializeConfig(BaseModel):
    """Where the issues of one plugin run go and which Job owns them."""

    cluster: str = Field(..., min_length=1)
    issues_namespace: str = Field(..., min_length=1)
    plugin: str = Field(..., min_length=1)
    job_name: str = Field(..., min_length=1)
    job_uid: str = Field(..., min_length=1, description="Scan ID: UID of the Job that ran the plugin.")
    owner_references: list[OwnerReference] | None = None

    def job_owner_references(self) -> list[OwnerReference]:
        if self.owner_references is not None:
            return self.owner_references
        return [
            OwnerReference(
                api_version="batch/v1",
                kind="Job",
                name=self.job_name,
                uid=self.job_uid,
            )
        ]


def run_id_suffix(run_id: str) -> str:
    """Return the last '-' delimited segment of a run ID; errors when there is none."""
    idx = (run_id or "").rfind("-")
    if idx == -1 or idx == len(run_id) - 1:
        raise InvalidRunIdError(f"Run ID {run_id!r} has no '-<suffix>' segment")
    return run_id[idx + 1 :]


def issue_name(cluster: str, code: str, suffix: str) -> str:
    """Deterministic ClusterIssue name: <cluster>-<lowercase code>-<run suffix>."""
    return f"{cluster}-{code.lower()}-{suffix}"


def materialize(config: MaterializeConfig, specs: list[IssueSpec]) -> list[ClusterIssue]:
    """
    Wrap IssueSpecs into ClusterIssues carrying issue metadata on their labels.

    Pure function: names depend only on (cluster, code, run ID), so running it
    twice for the same run yields the same records.
    """
    suffix = run_id_suffix(config.job_uid)
    owners = config.job_owner_references()
    issues: list[ClusterIssue] = []
    for spec in specs:
        issue_spec = spec.model_copy(deep=True, update={"cluster": config.cluster})
        issues.append(
            ClusterIssue(
                metadata=ObjectMeta(
                    name=issue_name(config.cluster, issue_spec.id, suffix),
                    namespace=config.issues_namespace,
                    owner_references=[o.model_copy() for o in owners],
                    labels={
                        LABEL_SCAN_ID: config.job_uid,
                        LABEL_CLUSTER: config.cluster,
                        LABEL_SEVERITY: issue_spec.severity.value,
                        LABEL_ISSUE_ID: issue_spec.id,
                        LABEL_CATEGORY: _label_value(issue_spec.category),
                        LABEL_PLUGIN: config.plugin,
                    },
                ),
                spec=issue_spec,
            )
        )
    return issues


def _label_value(value: str) -> str:
    """Label values cannot contain spaces and are capped at 63 characters."""
    return value.strip().replace(" ", "")[:63]


class IssueMaterializer:
    """Create ClusterIssues through the Kubernetes gateway."""

    def __init__(self, gateway: "KubeGateway") -> None:
        self.gateway = gateway

    def create_all(self, issues: list[ClusterIssue]) -> list[str]:
        """
        Create every issue; existing names count as created.

        Creation continues past individual failures; if any failed, a
        MaterializationError listing them is raised after the loop. Records
        already created are kept, a retry completes the rest.
        """
        created: list[str] = []
        failed: list[str] = []
        for issue in issues:
            name = issue.metadata.name
            try:
                self.gateway.create_cluster_issue(issue.metadata.namespace or "default", issue.to_manifest())
                created.append(name)
            except ConflictError:
                logger.info("ClusterIssue %s already exists", name)
                created.append(name)
            except KubeApiError as e:
                logger.error("Failed to create ClusterIssue %s: %s", name, e.message)
                failed.append(name)
        if failed:
            raise MaterializationError(
                f"{len(failed)} of {len(issues)} ClusterIssues could not be created",
                failed,
            )
        logger.info("ClusterIssues created: %d", len(created))
        return created
