"""
kopf handlers for ClusterScan.

Reconciliation runs on spec changes, on operator start for existing objects,
on a fixed interval, and when an owned CronJob changes. Every path re-reads
the ClusterScan and reconciles it under a per-object lock.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import NoReturn

import kopf
from pydantic import ValidationError

from kubescan.core.config import get_settings, settings
from kubescan.core.errors import KubeApiError, NotFoundError, ReconcileError
from kubescan.core.kube import KubernetesGateway, load_kube_config
from kubescan.schemas.clusterscan import (
    GROUP,
    KIND,
    LABEL_CLUSTER_SCAN,
    PLURAL,
    VERSION,
    ClusterScan,
    invalid_status_patch,
)
from kubescan.services.reconciler import ClusterScanReconciler

logger = logging.getLogger(__name__)

_locks: dict[tuple[str, str], threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(namespace: str, name: str) -> threading.Lock:
    with _locks_guard:
        return _locks.setdefault((namespace, name), threading.Lock())


def forget_cluster_scan(namespace: str, name: str) -> None:
    with _locks_guard:
        _locks.pop((namespace, name), None)


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_) -> None:
    """Load the kube config and build the gateway and reconciler shared by all handlers."""
    app_settings = get_settings()
    # Handler progress lives in annotations; the status subresource belongs to the reconciler.
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=GROUP)
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix=GROUP)
    settings.posting.level = logging.getLevelName(app_settings.LOG_LEVEL)

    load_kube_config(app_settings.KUBE_IN_CLUSTER)
    memo.gateway = KubernetesGateway(issue_page_size=app_settings.ISSUE_LIST_PAGE_SIZE)
    memo.reconciler = ClusterScanReconciler.from_settings(memo.gateway, app_settings)
    logger.info(
        "Operator starting: default_plugins=%s/%s interval=%ss",
        app_settings.DEFAULT_PLUGINS_NAMESPACE,
        ",".join(app_settings.DEFAULT_PLUGINS_NAMES),
        app_settings.RECONCILE_INTERVAL_SEC,
    )


def reconcile_cluster_scan(memo: kopf.Memo, namespace: str, name: str) -> None:
    """Reconcile the current version of a ClusterScan; a deleted object is ignored."""
    with _lock_for(namespace, name):
        try:
            body = memo.gateway.get_cluster_scan(namespace, name)
        except NotFoundError:
            logger.info("ClusterScan %s/%s not found; ignoring", namespace, name)
            return
        try:
            clusterscan = ClusterScan.model_validate(body)
        except ValidationError as e:
            report_invalid_cluster_scan(memo, namespace, name, body, e)
        try:
            memo.reconciler.reconcile(clusterscan)
        except ReconcileError as e:
            raise kopf.TemporaryError(
                f"{e.reason}: {e.message}", delay=get_settings().RETRY_BACKOFF_SEC
            ) from e


def validation_summary(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" if err["loc"] else err["msg"]
        for err in error.errors()
    )


def report_invalid_cluster_scan(
    memo: kopf.Memo, namespace: str, name: str, body: dict, error: ValidationError
) -> NoReturn:
    """Mark an invalid ClusterScan not Ready and stop retrying it until its spec changes."""
    message = f"invalid ClusterScan: {validation_summary(error)}"
    logger.error("ClusterScan %s/%s is invalid: %s", namespace, name, message)
    try:
        memo.gateway.patch_cluster_scan_status(namespace, name, invalid_status_patch(body, message))
    except KubeApiError as e:
        raise kopf.TemporaryError(
            f"failed to update ClusterScan status: {e.message}", delay=get_settings().RETRY_BACKOFF_SEC
        ) from e
    raise kopf.PermanentError(message) from error


@kopf.on.create(GROUP, VERSION, PLURAL)
@kopf.on.update(GROUP, VERSION, PLURAL, field="spec")
@kopf.on.resume(GROUP, VERSION, PLURAL)
def on_cluster_scan(namespace: str, name: str, memo: kopf.Memo, **_) -> None:
    reconcile_cluster_scan(memo, namespace, name)


@kopf.on.delete(GROUP, VERSION, PLURAL, optional=True)
def on_cluster_scan_deleted(namespace: str, name: str, **_) -> None:
    # Owned CronJobs are garbage collected through their owner references.
    forget_cluster_scan(namespace, name)


@kopf.timer(GROUP, VERSION, PLURAL, interval=settings.RECONCILE_INTERVAL_SEC, idle=settings.RECONCILE_INTERVAL_SEC)
def requeue_cluster_scan(namespace: str, name: str, memo: kopf.Memo, **_) -> None:
    try:
        reconcile_cluster_scan(memo, namespace, name)
    except kopf.PermanentError as e:
        # Status already says why; the next spec change or interval tries again.
        logger.warning("ClusterScan %s/%s skipped: %s", namespace, name, e)


def owner_cluster_scan(owner_references: list[dict], labels: dict) -> str | None:
    """Name of the ClusterScan controlling a CronJob, from its owner reference or label."""
    for ref in owner_references or []:
        if ref.get("controller") and ref.get("kind") == KIND:
            return ref.get("name")
    return (labels or {}).get(LABEL_CLUSTER_SCAN)


@kopf.on.event("batch", "v1", "cronjobs", labels={LABEL_CLUSTER_SCAN: kopf.PRESENT})
def on_owned_cron_job(event: dict, body: kopf.Body, namespace: str, memo: kopf.Memo, **_) -> None:
    if event.get("type") is None:
        # Initial listing; the resume handler covers existing objects.
        return
    owner = owner_cluster_scan(list(body.metadata.get("ownerReferences") or []), dict(body.metadata.labels))
    if not owner:
        return
    logger.debug("CronJob %s/%s changed: reconciling ClusterScan %s", namespace, body.metadata.name, owner)
    try:
        reconcile_cluster_scan(memo, namespace, owner)
    except (kopf.TemporaryError, kopf.PermanentError) as e:
        # Event handlers are not retried; the timer picks the object up again.
        logger.warning("ClusterScan %s/%s reconciliation failed: %s", namespace, owner, e)


@kopf.on.probe(id="now")
def now_probe(**_) -> str:
    return datetime.now(timezone.utc).isoformat()
