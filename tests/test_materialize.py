"""Tests for ClusterIssue materialization and creation."""

import unittest
from unittest.mock import MagicMock

from kubescan.core.errors import ConflictError, InvalidRunIdError, KubeApiError, MaterializationError
from kubescan.schemas.issues import IssueSpec, Severity
from kubescan.services.materialize import (
    IssueMaterializer,
    MaterializeConfig,
    issue_name,
    materialize,
    run_id_suffix,
)

JOB_UID = "4a1c7c2e-0b0e-4d4f-9a5e-6d2f1c3b9e77"


def _config(**overrides) -> MaterializeConfig:
    values = {
        "cluster": "mycluster",
        "issues_namespace": "zora-system",
        "plugin": "popeye",
        "job_name": "mycluster-popeye-28612345",
        "job_uid": JOB_UID,
    }
    values.update(overrides)
    return MaterializeConfig(**values)


def _spec(code: str = "pop-106", category: str = "Container") -> IssueSpec:
    spec = IssueSpec(id=code, message="No resources requests/limits defined", severity=Severity.MEDIUM, category=category)
    spec.add_resource("v1/pods", "default/nginx")
    return spec


class TestRunIdSuffix(unittest.TestCase):
    def test_last_segment(self) -> None:
        self.assertEqual(run_id_suffix(JOB_UID), "6d2f1c3b9e77")

    def test_without_dash(self) -> None:
        with self.assertRaises(InvalidRunIdError):
            run_id_suffix("nodash")

    def test_trailing_dash(self) -> None:
        with self.assertRaises(InvalidRunIdError):
            run_id_suffix("abc-")


class TestMaterialize(unittest.TestCase):
    """Names, labels and owner references of materialized issues."""

    def test_name_and_labels(self) -> None:
        [issue] = materialize(_config(), [_spec()])
        self.assertEqual(issue.metadata.name, "mycluster-pop-106-6d2f1c3b9e77")
        self.assertEqual(issue.metadata.namespace, "zora-system")
        self.assertEqual(
            issue.metadata.labels,
            {
                "zora.undistro.io/scanID": JOB_UID,
                "zora.undistro.io/cluster": "mycluster",
                "zora.undistro.io/severity": "Medium",
                "zora.undistro.io/id": "pop-106",
                "zora.undistro.io/category": "Container",
                "zora.undistro.io/plugin": "popeye",
            },
        )
        self.assertEqual(issue.spec.cluster, "mycluster")

    def test_owned_by_job(self) -> None:
        [issue] = materialize(_config(), [_spec()])
        [owner] = issue.metadata.owner_references
        self.assertEqual((owner.api_version, owner.kind), ("batch/v1", "Job"))
        self.assertEqual(owner.name, "mycluster-popeye-28612345")
        self.assertEqual(owner.uid, JOB_UID)

    def test_same_run_yields_same_names(self) -> None:
        first = [i.metadata.name for i in materialize(_config(), [_spec("pop-106"), _spec("pop-400")])]
        second = [i.metadata.name for i in materialize(_config(), [_spec("pop-106"), _spec("pop-400")])]
        self.assertEqual(first, second)

    def test_category_label_has_no_spaces(self) -> None:
        [issue] = materialize(_config(), [_spec(category="Horizontal Pod Autoscaler")])
        self.assertEqual(issue.metadata.labels["zora.undistro.io/category"], "HorizontalPodAutoscaler")

    def test_input_specs_not_modified(self) -> None:
        spec = _spec()
        materialize(_config(), [spec])
        self.assertEqual(spec.cluster, "")

    def test_manifest(self) -> None:
        [issue] = materialize(_config(), [_spec()])
        body = issue.to_manifest()
        self.assertEqual(body["apiVersion"], "zora.undistro.io/v1alpha1")
        self.assertEqual(body["kind"], "ClusterIssue")
        self.assertEqual(body["spec"]["totalResources"], 1)
        self.assertEqual(body["metadata"]["ownerReferences"][0]["apiVersion"], "batch/v1")


class TestIssueMaterializer(unittest.TestCase):
    """Creation through the gateway."""

    def test_creates_all(self) -> None:
        gateway = MagicMock()
        issues = materialize(_config(), [_spec("pop-106"), _spec("pop-400")])
        created = IssueMaterializer(gateway).create_all(issues)
        self.assertEqual(len(created), 2)
        self.assertEqual(gateway.create_cluster_issue.call_count, 2)
        namespace, body = gateway.create_cluster_issue.call_args_list[0].args
        self.assertEqual(namespace, "zora-system")
        self.assertEqual(body["metadata"]["name"], "mycluster-pop-106-6d2f1c3b9e77")

    def test_conflict_counts_as_created(self) -> None:
        gateway = MagicMock()
        gateway.create_cluster_issue.side_effect = ConflictError("already exists")
        issues = materialize(_config(), [_spec()])
        self.assertEqual(IssueMaterializer(gateway).create_all(issues), ["mycluster-pop-106-6d2f1c3b9e77"])

    def test_partial_failure_attempts_all_and_raises(self) -> None:
        gateway = MagicMock()
        gateway.create_cluster_issue.side_effect = [KubeApiError("forbidden", 403), {}, {}]
        issues = materialize(_config(), [_spec("pop-106"), _spec("pop-205"), _spec("pop-400")])
        with self.assertRaises(MaterializationError) as ctx:
            IssueMaterializer(gateway).create_all(issues)
        self.assertEqual(ctx.exception.failed, ["mycluster-pop-106-6d2f1c3b9e77"])
        self.assertEqual(gateway.create_cluster_issue.call_count, 3)
