"""Tests for ClusterScan status aggregation, conditions and the status patch body."""

import unittest
from datetime import datetime, timedelta, timezone

from kubescan.schemas.clusterscan import ClusterScan, ClusterScanStatus, PluginScanStatus, invalid_status_patch
from kubescan.schemas.meta import Condition, find_condition, set_condition

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _status(**plugins: PluginScanStatus) -> ClusterScanStatus:
    return ClusterScanStatus(plugins=dict(plugins))


class TestSyncStatusTimes(unittest.TestCase):
    """Aggregate timestamps: latest for past events, earliest for the next schedule."""

    def test_latest_and_earliest(self) -> None:
        status = _status(
            popeye=PluginScanStatus(
                last_schedule_time=T0,
                last_finished_time=T0 + timedelta(minutes=5),
                next_schedule_time=T0 + timedelta(hours=1),
            ),
            kubescape=PluginScanStatus(
                last_schedule_time=T0 + timedelta(minutes=10),
                last_finished_time=None,
                next_schedule_time=T0 + timedelta(minutes=30),
            ),
        )
        status.sync_status()
        self.assertEqual(status.last_schedule_time, T0 + timedelta(minutes=10))
        self.assertEqual(status.last_finished_time, T0 + timedelta(minutes=5))
        self.assertEqual(status.next_schedule_time, T0 + timedelta(minutes=30))
        self.assertIsNone(status.last_successful_time)

    def test_plugin_names_sorted(self) -> None:
        status = _status(popeye=PluginScanStatus(), kubescape=PluginScanStatus())
        status.sync_status()
        self.assertEqual(status.plugin_names, "kubescape,popeye")
        self.assertEqual(list(status.plugins), ["kubescape", "popeye"])


class TestSyncStatusOutcome(unittest.TestCase):
    """Aggregate statuses: Failed beats Complete; Active overrides lastStatus only."""

    def test_failed_wins(self) -> None:
        status = _status(
            a=PluginScanStatus(last_finished_status="Complete", last_status="Complete"),
            b=PluginScanStatus(last_finished_status="Failed", last_status="Failed"),
        )
        status.sync_status()
        self.assertEqual(status.last_finished_status, "Failed")
        self.assertEqual(status.last_status, "Failed")

    def test_complete(self) -> None:
        status = _status(a=PluginScanStatus(last_finished_status="Complete", last_status="Complete"))
        status.sync_status()
        self.assertEqual(status.last_status, "Complete")

    def test_active_overrides_last_status_only(self) -> None:
        status = _status(
            a=PluginScanStatus(last_finished_status="Complete", last_status="Active"),
            b=PluginScanStatus(last_finished_status="Complete", last_status="Complete"),
        )
        status.sync_status()
        self.assertEqual(status.last_status, "Active")
        self.assertEqual(status.last_finished_status, "Complete")

    def test_no_runs_leaves_statuses_unset(self) -> None:
        status = _status(a=PluginScanStatus())
        status.last_status = "Failed"
        status.sync_status()
        self.assertIsNone(status.last_status)
        self.assertIsNone(status.last_finished_status)


class TestLastScanIds(unittest.TestCase):
    def test_successful_ids_skip_missing(self) -> None:
        status = _status(
            b=PluginScanStatus(last_scan_id="b-2", last_successful_scan_id="b-1"),
            a=PluginScanStatus(last_scan_id="a-1"),
        )
        self.assertEqual(status.last_scan_ids(successful=True), ["b-1"])
        self.assertEqual(status.last_scan_ids(successful=False), ["a-1", "b-2"])


class TestSetCondition(unittest.TestCase):
    """Condition upsert keeps order and only moves transition time on status change."""

    def test_upsert(self) -> None:
        conditions: list[Condition] = []
        set_condition(conditions, Condition(type="Other", status="True"), now=T0)
        set_condition(conditions, Condition(type="Ready", status="False", reason="A"), now=T0)
        set_condition(
            conditions, Condition(type="Ready", status="False", reason="B"), now=T0 + timedelta(minutes=1)
        )
        self.assertEqual([c.type for c in conditions], ["Other", "Ready"])
        ready = find_condition(conditions, "Ready")
        self.assertEqual(ready.reason, "B")
        self.assertEqual(ready.last_transition_time, T0)

        set_condition(
            conditions, Condition(type="Ready", status="True", reason="C"), now=T0 + timedelta(minutes=2)
        )
        self.assertEqual(ready.status, "True")
        self.assertEqual(ready.last_transition_time, T0 + timedelta(minutes=2))


class TestClusterScanModel(unittest.TestCase):
    """Wire representation of ClusterScan."""

    def _body(self) -> dict:
        return {
            "apiVersion": "zora.undistro.io/v1alpha1",
            "kind": "ClusterScan",
            "metadata": {"name": "mycluster", "namespace": "ns", "uid": "u-1", "generation": 3},
            "spec": {"clusterRef": {"name": "mycluster"}, "schedule": "*/5 * * * *"},
            "status": {
                "plugins": {
                    "popeye": {
                        "lastScanID": "job-uid-1",
                        "lastScheduleTime": "2024-05-01T12:00:00Z",
                    }
                }
            },
        }

    def test_parses_camel_case_and_times(self) -> None:
        scan = ClusterScan.model_validate(self._body())
        popeye = scan.status.plugins["popeye"]
        self.assertEqual(popeye.last_scan_id, "job-uid-1")
        self.assertEqual(popeye.last_schedule_time, T0)
        self.assertEqual(scan.cluster_key(), ("ns", "mycluster"))

    def test_duplicate_plugin_references_rejected(self) -> None:
        body = self._body()
        body["spec"]["plugins"] = [{"name": "popeye"}, {"name": "popeye"}]
        with self.assertRaises(ValueError):
            ClusterScan.model_validate(body)

    def test_status_patch(self) -> None:
        scan = ClusterScan.model_validate(self._body())
        scan.set_ready_status(True, "ClusterScanReconciled", "ok")
        patch = scan.status_patch()
        self.assertEqual(patch["plugins"]["popeye"]["lastScheduleTime"], "2024-05-01T12:00:00Z")
        self.assertEqual(patch["plugins"]["popeye"]["lastScanID"], "job-uid-1")
        self.assertIn("totalIssues", patch)
        self.assertIsNone(patch["totalIssues"])
        ready = patch["conditions"][0]
        self.assertEqual(ready["type"], "Ready")
        self.assertEqual(ready["observedGeneration"], 3)

    def test_status_patch_nulls_removed_plugins(self) -> None:
        scan = ClusterScan.model_validate(self._body())
        scan.status.remove_plugin("popeye")
        scan.status.remove_plugin("never-there")
        patch = scan.status_patch()
        self.assertEqual(patch["plugins"], {"popeye": None})

    def test_status_patch_keeps_re_added_plugin(self) -> None:
        scan = ClusterScan.model_validate(self._body())
        scan.status.remove_plugin("popeye")
        scan.status.plugins["popeye"] = PluginScanStatus(last_scan_id="job-uid-2")
        patch = scan.status_patch()
        self.assertEqual(patch["plugins"]["popeye"]["lastScanID"], "job-uid-2")

    def test_invalid_status_patch_keeps_other_conditions(self) -> None:
        body = self._body()
        body["status"]["conditions"] = [
            {"type": "Other", "status": "True", "lastTransitionTime": "2024-05-01T10:00:00Z"},
            {"type": "Ready", "status": "False", "lastTransitionTime": "2024-05-01T11:00:00Z", "reason": "X"},
        ]
        patch = invalid_status_patch(body, "invalid ClusterScan: spec.plugins: duplicate")
        other, ready = patch["conditions"]
        self.assertEqual(other["type"], "Other")
        self.assertEqual(ready["reason"], "ClusterScanInvalid")
        self.assertEqual(ready["message"], "invalid ClusterScan: spec.plugins: duplicate")
        # Already False: the transition time does not move.
        self.assertEqual(ready["lastTransitionTime"], "2024-05-01T11:00:00Z")
        self.assertEqual(ready["observedGeneration"], 3)
