"""ClusterScan resource: scan intent (spec) and per-plugin / aggregate scan state (status)."""

from typing import Any

from pydantic import Field, PrivateAttr, field_validator

from kubescan.schemas.meta import (
    CONDITION_FALSE,
    CONDITION_TRUE,
    Condition,
    KubeModel,
    KubeTime,
    LocalObjectReference,
    ObjectMeta,
    set_condition,
)

GROUP = "zora.undistro.io"
VERSION = "v1alpha1"
PLURAL = "clusterscans"
KIND = "ClusterScan"

LABEL_CLUSTER = f"{GROUP}/cluster"
LABEL_CLUSTER_SCAN = f"{GROUP}/cluster-scan"
LABEL_PLUGIN = f"{GROUP}/plugin"

READY_CONDITION = "Ready"
REASON_INVALID = "ClusterScanInvalid"

STATUS_ACTIVE = "Active"
STATUS_COMPLETE = "Complete"
STATUS_FAILED = "Failed"


class PluginReference(KubeModel):
    """One plugin a ClusterScan runs, with optional per-plugin overrides."""

    name: str = Field(..., min_length=1, description="Name of the Plugin resource.")
    namespace: str | None = Field(
        default=None,
        description="Namespace of the Plugin; the default plugins namespace when empty.",
    )
    suspend: bool | None = Field(
        default=None,
        description="Suspends subsequent runs of this plugin only; overrides the ClusterScan flag.",
    )
    schedule: str | None = Field(
        default=None,
        description="Cron schedule for this plugin; overrides the ClusterScan schedule.",
    )
    env: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Extra environment variables (corev1.EnvVar) for the plugin container.",
    )

    def plugin_key(self, default_namespace: str) -> tuple[str, str]:
        """Return (namespace, name) of the referenced Plugin."""
        return (self.namespace or default_namespace, self.name)


class ClusterScanSpec(KubeModel):
    cluster_ref: LocalObjectReference
    suspend: bool | None = None
    schedule: str = Field(..., min_length=1, description="Cron schedule shared by all plugins.")
    plugins: list[PluginReference] = Field(default_factory=list)

    @field_validator("plugins")
    @classmethod
    def validate_unique_plugins(cls, v: list[PluginReference]) -> list[PluginReference]:
        seen: set[tuple[str, str]] = set()
        for ref in v:
            key = (ref.name, ref.namespace or "")
            if key in seen:
                raise ValueError(f"duplicate plugin reference {ref.name!r} in namespace {ref.namespace!r}")
            seen.add(key)
        return v


class PluginScanStatus(KubeModel):
    """Execution history of one plugin, as seen on its most recent Job."""

    last_schedule_time: KubeTime | None = None
    last_finished_time: KubeTime | None = None
    last_successful_time: KubeTime | None = None
    next_schedule_time: KubeTime | None = None
    last_scan_id: str | None = Field(default=None, alias="lastScanID")
    last_successful_scan_id: str | None = Field(default=None, alias="lastSuccessfulScanID")
    last_status: str | None = None
    last_finished_status: str | None = None
    last_error_msg: str | None = None


class ClusterScanStatus(KubeModel):
    conditions: list[Condition] = Field(default_factory=list)
    observed_generation: int | None = None
    plugins: dict[str, PluginScanStatus] = Field(default_factory=dict)
    plugin_names: str | None = None
    suspend: bool = False
    last_schedule_time: KubeTime | None = None
    last_finished_time: KubeTime | None = None
    last_finished_status: str | None = None
    last_status: str | None = None
    last_successful_time: KubeTime | None = None
    next_schedule_time: KubeTime | None = None
    total_issues: int | None = None

    # Plugin entries deleted since the object was read; written as nulls in the status patch.
    _removed_plugins: set[str] = PrivateAttr(default_factory=set)

    def get_plugin_status(self, name: str) -> PluginScanStatus:
        """Return the status entry of a plugin, creating an empty one if absent."""
        if name not in self.plugins:
            self.plugins[name] = PluginScanStatus()
        return self.plugins[name]

    def remove_plugin(self, name: str) -> None:
        if self.plugins.pop(name, None) is not None:
            self._removed_plugins.add(name)

    @property
    def removed_plugins(self) -> list[str]:
        return sorted(self._removed_plugins)

    def last_scan_ids(self, successful: bool) -> list[str]:
        """Scan IDs of each plugin's last (or last successful) run, in plugin name order."""
        ids: list[str] = []
        for name in sorted(self.plugins):
            p = self.plugins[name]
            sid = p.last_successful_scan_id if successful else p.last_scan_id
            if sid:
                ids.append(sid)
        return ids

    def sync_status(self) -> None:
        """
        Recompute the aggregate fields from the per-plugin entries.

        Times: next schedule is the earliest present value, the others the
        latest present value. Statuses: Failed if any plugin's last finished
        run failed, else Complete if any completed. lastStatus (but not
        lastFinishedStatus) becomes Active while any plugin is running.
        """
        self.plugins = {name: self.plugins[name] for name in sorted(self.plugins)}

        self.next_schedule_time = None
        self.last_schedule_time = None
        self.last_finished_time = None
        self.last_successful_time = None
        self.last_status = None
        self.last_finished_status = None

        failed = active = complete = 0
        for p in self.plugins.values():
            self.last_schedule_time = _latest(self.last_schedule_time, p.last_schedule_time)
            self.last_finished_time = _latest(self.last_finished_time, p.last_finished_time)
            self.last_successful_time = _latest(self.last_successful_time, p.last_successful_time)
            self.next_schedule_time = _earliest(self.next_schedule_time, p.next_schedule_time)
            if p.last_status == STATUS_ACTIVE:
                active += 1
            if p.last_finished_status == STATUS_FAILED:
                failed += 1
            elif p.last_finished_status == STATUS_COMPLETE:
                complete += 1

        if failed > 0:
            self.last_finished_status = STATUS_FAILED
            self.last_status = STATUS_FAILED
        elif complete > 0:
            self.last_finished_status = STATUS_COMPLETE
            self.last_status = STATUS_COMPLETE
        if active > 0:
            self.last_status = STATUS_ACTIVE

        self.plugin_names = ",".join(self.plugins)


def _latest(current, candidate):
    if candidate is None:
        return current
    if current is None or current < candidate:
        return candidate
    return current


def _earliest(current, candidate):
    if candidate is None:
        return current
    if current is None or candidate < current:
        return candidate
    return current


class ClusterScan(KubeModel):
    metadata: ObjectMeta
    spec: ClusterScanSpec
    status: ClusterScanStatus = Field(default_factory=ClusterScanStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or "default"

    def cluster_key(self) -> tuple[str, str]:
        """(namespace, name) of the referenced Cluster; always in the ClusterScan's namespace."""
        return (self.namespace, self.spec.cluster_ref.name)

    def set_ready_status(self, ready: bool, reason: str, message: str) -> None:
        set_condition(
            self.status.conditions,
            Condition(
                type=READY_CONDITION,
                status=CONDITION_TRUE if ready else CONDITION_FALSE,
                observed_generation=self.metadata.generation,
                reason=reason,
                message=message,
            ),
        )

    def status_patch(self) -> dict:
        """
        Status body for a merge patch.

        Unset fields are sent as null so that values cleared during
        reconciliation are removed from the stored object too.
        """
        data = self.status.model_dump(mode="json", by_alias=True)
        data["conditions"] = [c.to_json_dict() for c in self.status.conditions]
        for name in self.status.removed_plugins:
            data["plugins"].setdefault(name, None)
        return data


def invalid_status_patch(body: dict, message: str) -> dict:
    """
    Status patch for a stored ClusterScan that does not validate.

    Only the conditions are written: Ready turns False with reason
    ClusterScanInvalid, every other stored status field is left alone.
    """
    status = body.get("status") or {}
    conditions = [Condition.model_validate(c) for c in status.get("conditions") or []]
    set_condition(
        conditions,
        Condition(
            type=READY_CONDITION,
            status=CONDITION_FALSE,
            observed_generation=(body.get("metadata") or {}).get("generation"),
            reason=REASON_INVALID,
            message=message,
        ),
    )
    return {"conditions": [c.to_json_dict() for c in conditions]}
