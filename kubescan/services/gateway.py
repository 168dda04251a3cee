"""Kubernetes operations the operator and worker depend on, and a create-or-update helper."""

import copy
from collections.abc import Callable
from typing import Any, Literal, Protocol

from kubescan.core.errors import NotFoundError

Manifest = dict[str, Any]
OperationResult = Literal["created", "updated", "unchanged"]


class KubeGateway(Protocol):
    """
    Narrow view of the Kubernetes API.

    Objects go in and out as plain JSON dicts (camelCase keys, RFC 3339
    times). Failed calls raise KubeApiError; NotFoundError for 404 and
    ConflictError for 409.
    """

    def get_cluster(self, namespace: str, name: str) -> Manifest: ...

    def get_cluster_scan(self, namespace: str, name: str) -> Manifest: ...

    def get_plugin(self, namespace: str, name: str) -> Manifest: ...

    def get_secret(self, namespace: str, name: str) -> Manifest: ...

    def patch_cluster_scan_metadata(self, namespace: str, name: str, metadata: Manifest) -> Manifest: ...

    def patch_cluster_scan_status(self, namespace: str, name: str, status: Manifest) -> Manifest: ...

    def get_service_account(self, namespace: str, name: str) -> Manifest: ...

    def create_service_account(self, namespace: str, body: Manifest) -> Manifest: ...

    def replace_service_account(self, namespace: str, name: str, body: Manifest) -> Manifest: ...

    def get_cluster_role_binding(self, name: str) -> Manifest: ...

    def replace_cluster_role_binding(self, name: str, body: Manifest) -> Manifest: ...

    def get_cron_job(self, namespace: str, name: str) -> Manifest: ...

    def create_cron_job(self, namespace: str, body: Manifest) -> Manifest: ...

    def replace_cron_job(self, namespace: str, name: str, body: Manifest) -> Manifest: ...

    def list_jobs_of_cron_job(self, namespace: str, cron_job_name: str) -> list[Manifest]: ...

    def list_cluster_issues(self, label_selector: str) -> list[Manifest]: ...

    def create_cluster_issue(self, namespace: str, body: Manifest) -> Manifest: ...

    def record_event(self, involved: Manifest, event_type: str, reason: str, message: str) -> None: ...


def create_or_update(
    get: Callable[[], Manifest],
    create: Callable[[Manifest], Manifest],
    replace: Callable[[Manifest], Manifest],
    mutate: Callable[[Manifest | None], Manifest],
) -> tuple[OperationResult, Manifest]:
    """
    Fetch an object, apply mutate to a copy and write it back only when it changed.

    mutate receives None when the object does not exist yet.
    """
    try:
        existing = get()
    except NotFoundError:
        existing = None
    if existing is None:
        return "created", create(mutate(None))
    desired = mutate(copy.deepcopy(existing))
    if desired == existing:
        return "unchanged", existing
    return "updated", replace(desired)
