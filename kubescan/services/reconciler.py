"""ClusterScan reconciliation: from scan intent to CronJobs, and from Job history to status.

One call to ClusterScanReconciler.reconcile runs every step in order and
aborts on the first failure. Before an abort the Ready condition is set to
False with a reason naming the failed step; the status is persisted on every
path so the stored object always shows the latest outcome.
"""

import logging
import time
from datetime import datetime, timezone
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, NoReturn

from croniter import croniter
from pydantic import ValidationError

from kubescan.core.errors import KubeApiError, ReconcileError
from kubescan.schemas.cluster import CLUSTER_KIND, Cluster, Plugin
from kubescan.schemas.clusterscan import (
    GROUP,
    KIND,
    LABEL_CLUSTER,
    STATUS_ACTIVE,
    STATUS_COMPLETE,
    STATUS_FAILED,
    VERSION,
    ClusterScan,
    PluginReference,
    PluginScanStatus,
)
from kubescan.schemas.issues import LABEL_SCAN_ID
from kubescan.schemas.jobs import CronJob, JobRun, latest_job
from kubescan.schemas.meta import OwnerReference
from kubescan.services.cronjobs import cron_job_name, mutate_cron_job
from kubescan.services.gateway import KubeGateway, create_or_update

if TYPE_CHECKING:
    from kubescan.core.config import Settings

logger = logging.getLogger(__name__)

# Ready condition reasons.
REASON_RECONCILED = "ClusterScanReconciled"
REASON_CLUSTER_FETCH = "ClusterFetchError"
REASON_CLUSTER_NOT_READY = "ClusterNotReady"
REASON_KUBECONFIG = "ClusterKubeconfigError"
REASON_SET_OWNER = "ClusterScanSetOwnerError"
REASON_CRB_FETCH = "ClusterRoleBindingFetchError"
REASON_SA_APPLY = "ServiceAccountApplyError"
REASON_CRB_UPDATE = "ClusterRoleBindingUpdateError"
REASON_PLUGIN_FETCH = "PluginFetchError"
REASON_CRONJOB_APPLY = "CronJobApplyError"
REASON_JOB_LIST = "JobListError"
REASON_ISSUE_LIST = "ClusterIssueListError"

EVENT_NORMAL = "Normal"


class ClusterScanReconciler:
    """Drives one ClusterScan towards its declared state. Stateless between calls."""

    def __init__(
        self,
        gateway: KubeGateway,
        *,
        default_plugins_namespace: str,
        default_plugins_names: list[str],
        worker_image: str,
        cluster_role_binding_name: str,
        service_account_name: str,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.gateway = gateway
        self.default_plugins_namespace = default_plugins_namespace
        self.default_plugins_names = list(default_plugins_names)
        self.worker_image = worker_image
        self.cluster_role_binding_name = cluster_role_binding_name
        self.service_account_name = service_account_name
        self._now = now or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, gateway: KubeGateway, settings: "Settings") -> "ClusterScanReconciler":
        return cls(
            gateway,
            default_plugins_namespace=settings.DEFAULT_PLUGINS_NAMESPACE,
            default_plugins_names=settings.DEFAULT_PLUGINS_NAMES,
            worker_image=settings.WORKER_IMAGE,
            cluster_role_binding_name=settings.CLUSTER_ROLE_BINDING_NAME,
            service_account_name=settings.SERVICE_ACCOUNT_NAME,
        )

    def reconcile(self, clusterscan: ClusterScan) -> None:
        """
        Run one reconciliation and persist the resulting status.

        Raises ReconcileError when a step failed; the caller retries later.
        """
        started = time.monotonic()
        error: ReconcileError | None = None
        try:
            self._reconcile(clusterscan)
        except ReconcileError as e:
            error = e
        try:
            self.gateway.patch_cluster_scan_status(
                clusterscan.namespace, clusterscan.name, clusterscan.status_patch()
            )
        except KubeApiError as e:
            logger.error(
                "Failed to update ClusterScan status: clusterscan=%s/%s error=%s",
                clusterscan.namespace,
                clusterscan.name,
                e.message,
            )
        logger.info(
            "ClusterScan has been reconciled: clusterscan=%s/%s resource_version=%s elapsed=%.3fs",
            clusterscan.namespace,
            clusterscan.name,
            clusterscan.metadata.resource_version,
            time.monotonic() - started,
        )
        if error is not None:
            raise error

    def _reconcile(self, clusterscan: ClusterScan) -> None:
        cluster = self._fetch_cluster(clusterscan)
        if not cluster.is_ready():
            self._fail(
                clusterscan,
                REASON_CLUSTER_NOT_READY,
                f"the Cluster {cluster.metadata.name} is not Ready",
            )
        namespace = self._kubeconfig_namespace(clusterscan, cluster)
        kubeconfig_secret_name = cluster.spec.kubeconfig_ref.name

        self._set_controller_reference(clusterscan, cluster)
        self._apply_rbac(clusterscan)

        refs = self.plugin_references(clusterscan)
        seen: set[str] = set()
        for ref in refs:
            plugin = self._fetch_plugin(clusterscan, ref)
            self._apply_plugin(clusterscan, plugin, ref, namespace, kubeconfig_secret_name)
            seen.add(plugin.metadata.name)

        # Entries of plugins removed from the ClusterScan are dropped.
        for stale in [name for name in clusterscan.status.plugins if name not in seen]:
            clusterscan.status.remove_plugin(stale)

        self._count_issues(clusterscan)

        status = clusterscan.status
        status.sync_status()
        status.suspend = bool(clusterscan.spec.suspend)
        status.observed_generation = clusterscan.metadata.generation
        clusterscan.set_ready_status(
            True,
            REASON_RECONCILED,
            f"cluster scan successfully configured for plugins: {status.plugin_names}",
        )

    def plugin_references(self, clusterscan: ClusterScan) -> list[PluginReference]:
        """Plugins to run, sorted by (name, namespace) so side effects happen in a fixed order."""
        if clusterscan.spec.plugins:
            refs = list(clusterscan.spec.plugins)
        else:
            refs = [
                PluginReference(name=name, namespace=self.default_plugins_namespace)
                for name in self.default_plugins_names
            ]
        return sorted(refs, key=lambda r: (r.name, r.namespace or self.default_plugins_namespace))

    def _fail(self, clusterscan: ClusterScan, reason: str, message: str, cause: Exception | None = None) -> NoReturn:
        logger.error(
            "ClusterScan reconciliation failed: clusterscan=%s/%s reason=%s message=%s",
            clusterscan.namespace,
            clusterscan.name,
            reason,
            message,
        )
        clusterscan.set_ready_status(False, reason, message)
        raise ReconcileError(reason, message) from cause

    def _event(self, clusterscan: ClusterScan, reason: str, message: str) -> None:
        logger.info(message)
        involved = {
            "apiVersion": f"{GROUP}/{VERSION}",
            "kind": KIND,
            "metadata": {
                "name": clusterscan.name,
                "namespace": clusterscan.namespace,
                "uid": clusterscan.metadata.uid,
            },
        }
        self.gateway.record_event(involved, EVENT_NORMAL, reason, message)

    def _fetch_cluster(self, clusterscan: ClusterScan) -> Cluster:
        namespace, name = clusterscan.cluster_key()
        try:
            return Cluster.model_validate(self.gateway.get_cluster(namespace, name))
        except (KubeApiError, ValidationError) as e:
            self._fail(clusterscan, REASON_CLUSTER_FETCH, f"failed to fetch Cluster {name}: {_describe(e)}", e)

    def _kubeconfig_namespace(self, clusterscan: ClusterScan, cluster: Cluster) -> str:
        key = cluster.kubeconfig_ref_key()
        if key is None:
            self._fail(
                clusterscan,
                REASON_KUBECONFIG,
                f"the Cluster {cluster.metadata.name} has no kubeconfig reference",
            )
        namespace, name = key
        try:
            secret = self.gateway.get_secret(namespace, name)
        except KubeApiError as e:
            self._fail(
                clusterscan,
                REASON_KUBECONFIG,
                f"failed to get kubeconfig secret {namespace}/{name}: {e.message}",
                e,
            )
        return secret.get("metadata", {}).get("namespace") or namespace

    def _set_controller_reference(self, clusterscan: ClusterScan, cluster: Cluster) -> None:
        """Make the Cluster the controller of the ClusterScan and label it, once."""
        meta = clusterscan.metadata
        if meta.is_controlled_by(cluster.metadata.uid) and meta.labels.get(LABEL_CLUSTER) == cluster.metadata.name:
            return
        current = meta.controller_ref()
        if current is not None and current.uid != cluster.metadata.uid:
            self._fail(
                clusterscan,
                REASON_SET_OWNER,
                f"ClusterScan {clusterscan.name} is already controlled by {current.kind} {current.name}",
            )
        owner = OwnerReference(
            api_version=f"{GROUP}/{VERSION}",
            kind=CLUSTER_KIND,
            name=cluster.metadata.name,
            uid=cluster.metadata.uid or "",
            controller=True,
            block_owner_deletion=True,
        )
        refs = [r for r in meta.owner_references if r.uid != owner.uid and not r.controller] + [owner]
        patch = {
            "ownerReferences": [r.to_json_dict() for r in refs],
            "labels": {LABEL_CLUSTER: cluster.metadata.name},
        }
        try:
            self.gateway.patch_cluster_scan_metadata(clusterscan.namespace, clusterscan.name, patch)
        except KubeApiError as e:
            self._fail(clusterscan, REASON_SET_OWNER, f"failed to update ClusterScan: {e.message}", e)
        meta.owner_references = refs
        meta.labels[LABEL_CLUSTER] = cluster.metadata.name
        logger.info("ClusterScan updated: clusterscan=%s/%s owner=%s", clusterscan.namespace, clusterscan.name, cluster.metadata.name)

    def _apply_rbac(self, clusterscan: ClusterScan) -> None:
        """Ensure the plugins ServiceAccount exists here and is bound by the shared ClusterRoleBinding."""
        crb_name = self.cluster_role_binding_name
        try:
            crb = self.gateway.get_cluster_role_binding(crb_name)
        except KubeApiError as e:
            self._fail(
                clusterscan,
                REASON_CRB_FETCH,
                f"failed to fetch ClusterRoleBinding {crb_name}: {e.message}",
                e,
            )

        namespace = clusterscan.namespace
        sa_name = self.service_account_name
        try:
            result, _ = create_or_update(
                get=lambda: self.gateway.get_service_account(namespace, sa_name),
                create=lambda body: self.gateway.create_service_account(namespace, body),
                replace=lambda body: self.gateway.replace_service_account(namespace, sa_name, body),
                mutate=partial(_mutate_service_account, name=sa_name, namespace=namespace, clusterscan=clusterscan),
            )
        except KubeApiError as e:
            self._fail(
                clusterscan,
                REASON_SA_APPLY,
                f"failed to apply ServiceAccount {sa_name}: {e.message}",
                e,
            )
        if result != "unchanged":
            self._event(clusterscan, "ServiceAccountConfigured", f"ServiceAccount {sa_name} has been {result}")

        subject = {"kind": "ServiceAccount", "name": sa_name, "namespace": namespace}
        subjects = crb.get("subjects") or []
        if any(_same_subject(s, subject) for s in subjects):
            logger.debug(
                "ServiceAccount %s/%s already exists in ClusterRoleBinding %s subjects",
                namespace,
                sa_name,
                crb_name,
            )
            return
        crb["subjects"] = subjects + [subject]
        try:
            self.gateway.replace_cluster_role_binding(crb_name, crb)
        except KubeApiError as e:
            self._fail(
                clusterscan,
                REASON_CRB_UPDATE,
                f"failed to update ClusterRoleBinding {crb_name}: {e.message}",
                e,
            )
        self._event(clusterscan, "ClusterRoleBindingConfigured", f"ClusterRoleBinding {crb_name} has been updated")

    def _fetch_plugin(self, clusterscan: ClusterScan, ref: PluginReference) -> Plugin:
        namespace, name = ref.plugin_key(self.default_plugins_namespace)
        try:
            return Plugin.model_validate(self.gateway.get_plugin(namespace, name))
        except (KubeApiError, ValidationError) as e:
            self._fail(
                clusterscan,
                REASON_PLUGIN_FETCH,
                f"failed to fetch Plugin {namespace}/{name}: {_describe(e)}",
                e,
            )

    def _apply_plugin(
        self,
        clusterscan: ClusterScan,
        plugin: Plugin,
        ref: PluginReference,
        namespace: str,
        kubeconfig_secret_name: str,
    ) -> None:
        name = cron_job_name(clusterscan.name, plugin.metadata.name)
        mutate = partial(
            mutate_cron_job,
            name=name,
            namespace=namespace,
            plugin=plugin,
            ref=ref,
            clusterscan=clusterscan,
            kubeconfig_secret_name=kubeconfig_secret_name,
            worker_image=self.worker_image,
            service_account_name=self.service_account_name,
        )
        try:
            result, live = create_or_update(
                get=lambda: self.gateway.get_cron_job(namespace, name),
                create=lambda body: self.gateway.create_cron_job(namespace, body),
                replace=lambda body: self.gateway.replace_cron_job(namespace, name, body),
                mutate=mutate,
            )
        except KubeApiError as e:
            self._fail(clusterscan, REASON_CRONJOB_APPLY, f"failed to apply CronJob {name}: {e.message}", e)
        if result != "unchanged":
            self._event(clusterscan, "CronJobConfigured", f"CronJob {name} has been {result}")

        cron_job = CronJob.model_validate(live)
        plugin_status = clusterscan.status.get_plugin_status(plugin.metadata.name)
        plugin_status.next_schedule_time = self.next_schedule_time(cron_job.spec.schedule)

        if cron_job.status.last_schedule_time is None:
            return
        logger.debug("CronJob %s has scheduled jobs", name)
        try:
            jobs = [JobRun.model_validate(j) for j in self.gateway.list_jobs_of_cron_job(namespace, name)]
        except (KubeApiError, ValidationError) as e:
            self._fail(clusterscan, REASON_JOB_LIST, f"failed to list Jobs of CronJob {name}: {_describe(e)}", e)
        job = latest_job(jobs)
        if job is not None:
            update_plugin_status(plugin_status, cron_job, job)

    def next_schedule_time(self, schedule: str) -> datetime | None:
        """Next fire time of a cron expression; None (logged) when it does not parse."""
        try:
            return croniter(schedule, self._now()).get_next(datetime)
        except (ValueError, KeyError) as e:
            logger.error("Failed to parse CronJob schedule %r: %s", schedule, e)
            return None

    def _count_issues(self, clusterscan: ClusterScan) -> None:
        scan_ids = clusterscan.status.last_scan_ids(successful=True)
        if not scan_ids:
            return
        selector = f"{LABEL_SCAN_ID} in ({','.join(scan_ids)})"
        try:
            issues = self.gateway.list_cluster_issues(selector)
        except KubeApiError as e:
            self._fail(clusterscan, REASON_ISSUE_LIST, f"failed to list ClusterIssues: {e.message}", e)
        logger.debug("%d ClusterIssues found for scans %s", len(issues), scan_ids)
        clusterscan.status.total_issues = len(issues)


def update_plugin_status(plugin_status: PluginScanStatus, cron_job: CronJob, job: JobRun) -> None:
    """
    Record the outcome of a plugin's most recent Job.

    Complete moves both the "last" and "last successful" fields; Failed and
    Active only the "last" ones.
    """
    finished = job.finished_condition()
    finished_time: datetime | None = None
    if finished is not None:
        status = finished.type
        finished_time = finished.last_transition_time
        plugin_status.last_finished_status = status
    elif job.status.active or cron_job.status.active:
        status = STATUS_ACTIVE
    else:
        status = ""

    plugin_status.last_status = status or None
    plugin_status.last_scan_id = job.metadata.uid
    plugin_status.last_schedule_time = cron_job.status.last_schedule_time
    plugin_status.last_finished_time = finished_time
    if status == STATUS_COMPLETE:
        plugin_status.last_successful_scan_id = job.metadata.uid
        plugin_status.last_successful_time = finished_time
        plugin_status.last_error_msg = None
    elif status == STATUS_FAILED:
        plugin_status.last_error_msg = finished.message or finished.reason


def _mutate_service_account(
    existing: dict[str, Any] | None, *, name: str, namespace: str, clusterscan: ClusterScan
) -> dict[str, Any]:
    sa = existing or {"apiVersion": "v1", "kind": "ServiceAccount"}
    metadata = sa.setdefault("metadata", {})
    metadata["name"] = name
    metadata["namespace"] = namespace
    refs = metadata.setdefault("ownerReferences", [])
    if not any(r.get("uid") == clusterscan.metadata.uid for r in refs):
        refs.append(
            {
                "apiVersion": f"{GROUP}/{VERSION}",
                "kind": KIND,
                "name": clusterscan.name,
                "uid": clusterscan.metadata.uid,
            }
        )
    return sa


def _same_subject(a: dict[str, Any], b: dict[str, Any]) -> bool:
    return all(a.get(k) == b.get(k) for k in ("kind", "namespace", "name"))


def _describe(e: Exception) -> str:
    if isinstance(e, KubeApiError):
        return e.message
    if isinstance(e, ValidationError):
        return f"invalid object ({e.error_count()} validation error(s))"
    return str(e)
