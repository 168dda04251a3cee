"""Tests for the Popeye report parser: dedup by code, resource grouping, code tables, failures."""

import unittest
from pathlib import Path

from kubescan.core.errors import ReportParseError
from kubescan.schemas.issues import Severity
from kubescan.services.popeye import parse, split_code_and_message
from kubescan.services.popeye_codes import category_for_code

TESTDATA = Path(__file__).parent / "testdata"


def _read(name: str) -> bytes:
    return (TESTDATA / name).read_bytes()


class TestSplitCodeAndMessage(unittest.TestCase):
    """Message prefix handling."""

    def test_generic_message_replaces_original_text(self) -> None:
        code, message = split_code_and_message("[POP-205] Pod was restarted (12) times")
        self.assertEqual(code, "pop-205")
        self.assertEqual(message, "Pod was restarted")

    def test_keeps_original_text_without_generic_message(self) -> None:
        code, message = split_code_and_message("[POP-106] No resources requests/limits defined")
        self.assertEqual(code, "pop-106")
        self.assertEqual(message, "No resources requests/limits defined")

    def test_code_with_empty_description_is_accepted(self) -> None:
        code, message = split_code_and_message("[POP-999]")
        self.assertEqual(code, "pop-999")
        self.assertEqual(message, "")

    def test_missing_prefix_raises(self) -> None:
        with self.assertRaises(ReportParseError):
            split_code_and_message("POP-107 missing brackets")


class TestParseSingleCode(unittest.TestCase):
    """Sixteen resources reporting the same code collapse into one IssueSpec."""

    def test_one_spec_with_sixteen_resources(self) -> None:
        specs = parse(_read("popeye_report_sixteen.json"))
        self.assertEqual(len(specs), 1)
        spec = specs[0]
        self.assertEqual(spec.id, "pop-106")
        self.assertEqual(spec.total_resources, 16)
        self.assertEqual(list(spec.resources), ["apps/v1/daemonsets"])
        self.assertEqual(len(spec.resources["apps/v1/daemonsets"]), 16)
        self.assertIn("kube-system/ds-01", spec.resources["apps/v1/daemonsets"])
        self.assertEqual(spec.severity, Severity.MEDIUM)
        self.assertEqual(spec.category, "Container")
        self.assertTrue(spec.url.startswith("https://kubernetes.io/"))


class TestParseMixedReport(unittest.TestCase):
    """Codes shared across resource types are merged; distinct codes stay separate."""

    def setUp(self) -> None:
        self.specs = {s.id: s for s in parse(_read("popeye_report_mixed.json"))}

    def test_distinct_codes(self) -> None:
        self.assertEqual(set(self.specs), {"pop-400", "pop-205", "pop-106"})

    def test_code_across_two_resource_types(self) -> None:
        spec = self.specs["pop-400"]
        self.assertEqual(spec.total_resources, 2)
        self.assertEqual(
            spec.resources,
            {
                "rbac.authorization.k8s.io/v1/clusterroles": ["system:unused"],
                "rbac.authorization.k8s.io/v1/roles": ["default/reader"],
            },
        )
        self.assertEqual(spec.severity, Severity.LOW)
        self.assertEqual(spec.category, "General")

    def test_severity_from_level(self) -> None:
        self.assertEqual(self.specs["pop-205"].severity, Severity.HIGH)
        self.assertEqual(self.specs["pop-205"].message, "Pod was restarted")

    def test_totals_match_resource_lists(self) -> None:
        for spec in self.specs.values():
            self.assertEqual(spec.total_resources, sum(len(v) for v in spec.resources.values()))

    def test_same_report_parses_the_same_way(self) -> None:
        data = _read("popeye_report_mixed.json")
        first, second = parse(data), parse(data)
        self.assertEqual([s.id for s in first], [s.id for s in second])
        self.assertEqual(
            {s.id: s.total_resources for s in first},
            {s.id: s.total_resources for s in second},
        )
        self.assertEqual([s.model_dump() for s in first], [s.model_dump() for s in second])


class TestParseFailures(unittest.TestCase):
    """Unusable reports fail as a whole."""

    def test_malformed_message_returns_no_partial_list(self) -> None:
        with self.assertRaises(ReportParseError) as ctx:
            parse(_read("popeye_report_malformed.json"))
        self.assertIn("default/nginx", ctx.exception.message)

    def test_empty_bytes(self) -> None:
        with self.assertRaises(ReportParseError):
            parse(b"")

    def test_invalid_json(self) -> None:
        with self.assertRaises(ReportParseError):
            parse(b"{not json")

    def test_missing_popeye_key(self) -> None:
        with self.assertRaises(ReportParseError):
            parse(b'{"sanitizers": []}')


class TestParseEmptyReport(unittest.TestCase):
    """A report without sanitizers has no issues."""

    def test_returns_empty_list(self) -> None:
        self.assertEqual(parse(_read("popeye_report_empty.json")), [])


class TestCategories(unittest.TestCase):
    """Categories come from the listed codes; unlisted codes use the sanitizer name."""

    def test_listed_codes(self) -> None:
        self.assertEqual(category_for_code("POP-106"), "Container")
        self.assertEqual(category_for_code("POP-306"), "Security")
        self.assertEqual(category_for_code("POP-1120"), "ReplicaSet")
        self.assertEqual(category_for_code("POP-1300"), "RBAC")

    def test_gaps_in_a_range_are_not_listed(self) -> None:
        self.assertIsNone(category_for_code("POP-502"))
        self.assertIsNone(category_for_code("POP-114"))
        self.assertIsNone(category_for_code("POP-1110"))

    def test_unlisted_code_falls_back_to_sanitizer(self) -> None:
        data = (
            b'{"popeye": {"sanitizers": [{"sanitizer": "deployments", "gvr": "apps/v1/deployments", '
            b'"issues": {"default/web": [{"group": "__root__", "level": 2, '
            b'"message": "[POP-502] Something about the deployment"}]}}]}}'
        )
        [spec] = parse(data)
        self.assertEqual(spec.id, "pop-502")
        self.assertEqual(spec.category, "deployments")
