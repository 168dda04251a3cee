"""Compute the desired CronJob of one (ClusterScan, Plugin) pair.

The result is always derived from the live object when there is one: only the
fields listed below are written, everything else (server defaults, status,
fields set by other controllers) is carried over untouched.

Owned fields: metadata labels and controller owner reference; spec.schedule,
spec.suspend, spec.concurrencyPolicy, spec.successfulJobsHistoryLimit; and in
the pod template the service account, restart policy, the two volumes and the
plugin/worker containers (by name).

Env and resources read back from the API server are compared by meaning, so a
quantity stored as "500m" matches a plugin asking for "0.5".
"""

import copy
from typing import Any, Callable

from kubernetes.utils import parse_quantity

from kubescan.schemas.cluster import Plugin
from kubescan.schemas.clusterscan import (
    GROUP,
    KIND,
    LABEL_CLUSTER,
    LABEL_CLUSTER_SCAN,
    LABEL_PLUGIN,
    VERSION,
    ClusterScan,
    PluginReference,
)

WORKER_CONTAINER_NAME = "worker"
KUBECONFIG_VOLUME_NAME = "kubeconfig"
RESULTS_VOLUME_NAME = "results"
KUBECONFIG_MOUNT_PATH = "/etc/zora"
KUBECONFIG_FILE = f"{KUBECONFIG_MOUNT_PATH}/value"
RESULTS_DIR = "/tmp/zora/results"

MANAGED_BY = "zora"


def cron_job_name(clusterscan_name: str, plugin_name: str) -> str:
    return f"{clusterscan_name}-{plugin_name}"


def resolve_schedule(ref: PluginReference, clusterscan: ClusterScan) -> str:
    """Per-plugin schedule when set, else the ClusterScan schedule."""
    return ref.schedule or clusterscan.spec.schedule


def resolve_suspend(ref: PluginReference, clusterscan: ClusterScan) -> bool:
    """Per-plugin suspend when set, else the ClusterScan flag, else False."""
    if ref.suspend is not None:
        return ref.suspend
    if clusterscan.spec.suspend is not None:
        return clusterscan.spec.suspend
    return False


def base_env(clusterscan: ClusterScan, plugin_name: str) -> list[dict[str, Any]]:
    """Variables every plugin and worker container receives. Job name and UID resolve at run time."""
    return [
        {"name": "CLUSTER_NAME", "value": clusterscan.spec.cluster_ref.name},
        {"name": "CLUSTER_ISSUES_NAMESPACE", "value": clusterscan.namespace},
        {"name": "PLUGIN_NAME", "value": plugin_name},
        {
            "name": "JOB_NAME",
            "valueFrom": {"fieldRef": {"apiVersion": "v1", "fieldPath": "metadata.labels['job-name']"}},
        },
        {
            "name": "JOB_UID",
            "valueFrom": {"fieldRef": {"apiVersion": "v1", "fieldPath": "metadata.labels['controller-uid']"}},
        },
        {"name": "DONE_DIR", "value": RESULTS_DIR},
    ]


def owner_reference(clusterscan: ClusterScan) -> dict[str, Any]:
    return {
        "apiVersion": f"{GROUP}/{VERSION}",
        "kind": KIND,
        "name": clusterscan.name,
        "uid": clusterscan.metadata.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def _upsert_by_name(items: list[dict[str, Any]], name: str) -> dict[str, Any]:
    for item in items:
        if item.get("name") == name:
            return item
    item: dict[str, Any] = {"name": name}
    items.append(item)
    return item


def _set_controller_owner(metadata: dict[str, Any], owner: dict[str, Any]) -> None:
    refs = metadata.setdefault("ownerReferences", [])
    kept = [r for r in refs if not r.get("controller") and r.get("uid") != owner["uid"]]
    metadata["ownerReferences"] = kept + [owner]


def _set_optional(target: dict[str, Any], key: str, value: Any) -> None:
    # Empty values read back from the API ({} or []) are left alone.
    if value:
        target[key] = value
    elif target.get(key):
        del target[key]


def _set_equivalent(target: dict[str, Any], key: str, value: Any, canonical: Callable[[Any], Any]) -> None:
    # A live value the API server only rewrote is kept as read.
    if value and target.get(key) and canonical(target[key]) == canonical(value):
        return
    _set_optional(target, key, value)


def _quantity(value: Any) -> Any:
    if not isinstance(value, (str, int, float)):
        return value
    try:
        return parse_quantity(value)
    except ValueError:
        return value


def canonical_resources(resources: dict[str, Any] | None) -> dict[str, Any]:
    """Container resources with quantities as numbers and empty sections dropped."""
    out: dict[str, Any] = {}
    for section, values in (resources or {}).items():
        if isinstance(values, dict):
            if values:
                out[section] = {k: _quantity(v) for k, v in values.items()}
        elif values:
            out[section] = values
    return out


def canonical_env(env: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Env vars with the defaults the API server fills in applied."""
    out = []
    for var in env or []:
        var = copy.deepcopy(var)
        if var.get("value") == "":
            del var["value"]
        value_from = var.get("valueFrom") or {}
        if "fieldRef" in value_from:
            value_from["fieldRef"].setdefault("apiVersion", "v1")
        if "divisor" in (value_from.get("resourceFieldRef") or {}):
            value_from["resourceFieldRef"]["divisor"] = _quantity(value_from["resourceFieldRef"]["divisor"])
        out.append(var)
    return out


def mutate_cron_job(
    existing: dict[str, Any] | None,
    *,
    name: str,
    namespace: str,
    plugin: Plugin,
    ref: PluginReference,
    clusterscan: ClusterScan,
    kubeconfig_secret_name: str,
    worker_image: str,
    service_account_name: str,
) -> dict[str, Any]:
    """Return the desired CronJob manifest; never modifies existing."""
    cj = copy.deepcopy(existing) if existing else {}
    cj["apiVersion"] = "batch/v1"
    cj["kind"] = "CronJob"

    metadata = cj.setdefault("metadata", {})
    metadata["name"] = name
    metadata["namespace"] = namespace
    labels = metadata.setdefault("labels", {})
    labels.update(
        {
            "app.kubernetes.io/name": plugin.metadata.name,
            "app.kubernetes.io/managed-by": MANAGED_BY,
            LABEL_CLUSTER_SCAN: clusterscan.name,
            LABEL_CLUSTER: clusterscan.spec.cluster_ref.name,
            LABEL_PLUGIN: plugin.metadata.name,
        }
    )
    _set_controller_owner(metadata, owner_reference(clusterscan))

    spec = cj.setdefault("spec", {})
    spec["schedule"] = resolve_schedule(ref, clusterscan)
    spec["suspend"] = resolve_suspend(ref, clusterscan)
    spec["concurrencyPolicy"] = "Forbid"
    spec["successfulJobsHistoryLimit"] = 1

    job_spec = spec.setdefault("jobTemplate", {}).setdefault("spec", {})
    job_spec.setdefault("backoffLimit", 0)
    template = job_spec.setdefault("template", {})
    template.setdefault("metadata", {}).setdefault("labels", {}).update(
        {LABEL_CLUSTER_SCAN: clusterscan.name, LABEL_PLUGIN: plugin.metadata.name}
    )
    pod = template.setdefault("spec", {})
    pod["serviceAccountName"] = service_account_name
    pod["restartPolicy"] = "Never"

    volumes = pod.setdefault("volumes", [])
    kubeconfig_volume = _upsert_by_name(volumes, KUBECONFIG_VOLUME_NAME)
    kubeconfig_volume.pop("emptyDir", None)
    kubeconfig_volume.setdefault("secret", {})["secretName"] = kubeconfig_secret_name
    results_volume = _upsert_by_name(volumes, RESULTS_VOLUME_NAME)
    results_volume.setdefault("emptyDir", {})

    env = base_env(clusterscan, plugin.metadata.name)
    containers = pod.setdefault("containers", [])

    worker = _upsert_by_name(containers, WORKER_CONTAINER_NAME)
    worker["image"] = worker_image
    worker["env"] = copy.deepcopy(env)
    worker["volumeMounts"] = [{"name": RESULTS_VOLUME_NAME, "mountPath": RESULTS_DIR}]

    container = _upsert_by_name(containers, plugin.metadata.name)
    container["image"] = plugin.spec.image
    _set_optional(container, "command", list(plugin.spec.command))
    _set_optional(container, "args", list(plugin.spec.args))
    plugin_env = (
        copy.deepcopy(env)
        + [{"name": "KUBECONFIG", "value": KUBECONFIG_FILE}]
        + copy.deepcopy(plugin.spec.env)
        + copy.deepcopy(ref.env)
    )
    _set_equivalent(container, "env", plugin_env, canonical_env)
    container["volumeMounts"] = [
        {"name": KUBECONFIG_VOLUME_NAME, "mountPath": KUBECONFIG_MOUNT_PATH, "readOnly": True},
        {"name": RESULTS_VOLUME_NAME, "mountPath": RESULTS_DIR},
    ]
    _set_equivalent(container, "resources", copy.deepcopy(plugin.spec.resources), canonical_resources)
    _set_optional(container, "securityContext", copy.deepcopy(plugin.spec.security_context))
    return cj
