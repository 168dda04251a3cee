"""
Kubernetes gateway on the official client.

API models are converted to plain JSON dicts with ApiClient.sanitize_for_serialization,
so the rest of the code only deals with the camelCase wire representation.
"""

import logging
from typing import Any, Callable

import kopf
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from kubescan.core.errors import ConflictError, KubeApiError, NotFoundError
from kubescan.schemas.cluster import CLUSTER_PLURAL, PLUGIN_PLURAL
from kubescan.schemas.clusterscan import GROUP, PLURAL, VERSION
from kubescan.schemas.issues import CLUSTER_ISSUE_PLURAL

logger = logging.getLogger(__name__)

Manifest = dict[str, Any]


def load_kube_config(in_cluster: str = "auto") -> None:
    """
    Configure the kubernetes client.

    in_cluster is "true", "false" or "auto" (in-cluster first, then ~/.kube/config).
    """
    if in_cluster == "false":
        config.load_kube_config()
        logger.info("Using local kubeconfig")
        return
    try:
        config.load_incluster_config()
        logger.info("Using in-cluster Kubernetes config")
    except config.ConfigException:
        if in_cluster == "true":
            logger.error("In-cluster Kubernetes config is not available")
            raise
        config.load_kube_config()
        logger.info("Using local kubeconfig")


def _api_error(e: ApiException, what: str) -> KubeApiError:
    message = f"{what}: {e.status} {e.reason}"
    if e.status == 404:
        return NotFoundError(message)
    if e.status == 409:
        return ConflictError(message)
    return KubeApiError(message, e.status)


class KubernetesGateway:
    """KubeGateway backed by the kubernetes client; one instance per process."""

    def __init__(self, api_client: client.ApiClient | None = None, issue_page_size: int = 500) -> None:
        self.api_client = api_client or client.ApiClient()
        self.custom = client.CustomObjectsApi(self.api_client)
        self.core = client.CoreV1Api(self.api_client)
        self.batch = client.BatchV1Api(self.api_client)
        self.rbac = client.RbacAuthorizationV1Api(self.api_client)
        self.issue_page_size = issue_page_size

    def _call(self, what: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            result = fn(*args, **kwargs)
        except ApiException as e:
            raise _api_error(e, what) from e
        return self.api_client.sanitize_for_serialization(result)

    def get_cluster(self, namespace: str, name: str) -> Manifest:
        return self._call(
            f"get Cluster {namespace}/{name}",
            self.custom.get_namespaced_custom_object,
            GROUP, VERSION, namespace, CLUSTER_PLURAL, name,
        )

    def get_cluster_scan(self, namespace: str, name: str) -> Manifest:
        return self._call(
            f"get ClusterScan {namespace}/{name}",
            self.custom.get_namespaced_custom_object,
            GROUP, VERSION, namespace, PLURAL, name,
        )

    def get_plugin(self, namespace: str, name: str) -> Manifest:
        return self._call(
            f"get Plugin {namespace}/{name}",
            self.custom.get_namespaced_custom_object,
            GROUP, VERSION, namespace, PLUGIN_PLURAL, name,
        )

    def get_secret(self, namespace: str, name: str) -> Manifest:
        return self._call(f"get Secret {namespace}/{name}", self.core.read_namespaced_secret, name, namespace)

    def patch_cluster_scan_metadata(self, namespace: str, name: str, metadata: Manifest) -> Manifest:
        return self._call(
            f"patch ClusterScan {namespace}/{name}",
            self.custom.patch_namespaced_custom_object,
            GROUP, VERSION, namespace, PLURAL, name, {"metadata": metadata},
        )

    def patch_cluster_scan_status(self, namespace: str, name: str, status: Manifest) -> Manifest:
        return self._call(
            f"patch ClusterScan status {namespace}/{name}",
            self.custom.patch_namespaced_custom_object_status,
            GROUP, VERSION, namespace, PLURAL, name, {"status": status},
        )

    def get_service_account(self, namespace: str, name: str) -> Manifest:
        return self._call(
            f"get ServiceAccount {namespace}/{name}", self.core.read_namespaced_service_account, name, namespace
        )

    def create_service_account(self, namespace: str, body: Manifest) -> Manifest:
        return self._call(
            f"create ServiceAccount in {namespace}", self.core.create_namespaced_service_account, namespace, body
        )

    def replace_service_account(self, namespace: str, name: str, body: Manifest) -> Manifest:
        return self._call(
            f"replace ServiceAccount {namespace}/{name}",
            self.core.replace_namespaced_service_account,
            name, namespace, body,
        )

    def get_cluster_role_binding(self, name: str) -> Manifest:
        return self._call(f"get ClusterRoleBinding {name}", self.rbac.read_cluster_role_binding, name)

    def replace_cluster_role_binding(self, name: str, body: Manifest) -> Manifest:
        return self._call(f"replace ClusterRoleBinding {name}", self.rbac.replace_cluster_role_binding, name, body)

    def get_cron_job(self, namespace: str, name: str) -> Manifest:
        return self._call(f"get CronJob {namespace}/{name}", self.batch.read_namespaced_cron_job, name, namespace)

    def create_cron_job(self, namespace: str, body: Manifest) -> Manifest:
        return self._call(f"create CronJob in {namespace}", self.batch.create_namespaced_cron_job, namespace, body)

    def replace_cron_job(self, namespace: str, name: str, body: Manifest) -> Manifest:
        return self._call(
            f"replace CronJob {namespace}/{name}", self.batch.replace_namespaced_cron_job, name, namespace, body
        )

    def list_jobs_of_cron_job(self, namespace: str, cron_job_name: str) -> list[Manifest]:
        """Jobs in namespace whose controller is the named CronJob."""
        jobs = self._call(f"list Jobs in {namespace}", self.batch.list_namespaced_job, namespace)
        owned = []
        for job in jobs.get("items") or []:
            for ref in job.get("metadata", {}).get("ownerReferences") or []:
                if ref.get("controller") and ref.get("kind") == "CronJob" and ref.get("name") == cron_job_name:
                    owned.append(job)
                    break
        return owned

    def list_cluster_issues(self, label_selector: str) -> list[Manifest]:
        """All ClusterIssues matching label_selector, across namespaces, following pagination."""
        items: list[Manifest] = []
        token: str | None = None
        while True:
            kwargs: dict[str, Any] = {"label_selector": label_selector, "limit": self.issue_page_size}
            if token:
                kwargs["_continue"] = token
            page = self._call(
                "list ClusterIssues",
                self.custom.list_cluster_custom_object,
                GROUP, VERSION, CLUSTER_ISSUE_PLURAL,
                **kwargs,
            )
            items.extend(page.get("items") or [])
            token = (page.get("metadata") or {}).get("continue")
            if not token:
                return items

    def create_cluster_issue(self, namespace: str, body: Manifest) -> Manifest:
        return self._call(
            f"create ClusterIssue {body.get('metadata', {}).get('name')}",
            self.custom.create_namespaced_custom_object,
            GROUP, VERSION, namespace, CLUSTER_ISSUE_PLURAL, body,
        )

    def record_event(self, involved: Manifest, event_type: str, reason: str, message: str) -> None:
        kopf.event(involved, type=event_type, reason=reason, message=message)
