"""Pydantic views of the custom and built-in resources the operator reads and writes."""

from kubescan.schemas.cluster import Cluster, Plugin, PluginSpec
from kubescan.schemas.clusterscan import (
    ClusterScan,
    ClusterScanSpec,
    ClusterScanStatus,
    PluginReference,
    PluginScanStatus,
)
from kubescan.schemas.issues import ClusterIssue, IssueSpec, Severity
from kubescan.schemas.jobs import CronJob, JobRun
from kubescan.schemas.meta import Condition, ObjectMeta, OwnerReference

__all__ = [
    "Cluster",
    "ClusterIssue",
    "ClusterScan",
    "ClusterScanSpec",
    "ClusterScanStatus",
    "Condition",
    "CronJob",
    "IssueSpec",
    "JobRun",
    "ObjectMeta",
    "OwnerReference",
    "Plugin",
    "PluginReference",
    "PluginScanStatus",
    "PluginSpec",
    "Severity",
]
