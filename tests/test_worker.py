"""Tests for the worker: settings, done file handling and the end-to-end run with a mock gateway."""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from kubescan.core.config import WorkerSettings
from kubescan.core.errors import UnknownPluginError, WorkerConfigError
from kubescan.worker import load_worker_settings, read_report_path, run, wait_for_done_file

TESTDATA = Path(__file__).parent / "testdata"

ENV = {
    "PLUGIN_NAME": "popeye",
    "CLUSTER_NAME": "mycluster",
    "CLUSTER_ISSUES_NAMESPACE": "ns",
    "JOB_NAME": "mycluster-popeye-28612345",
    "JOB_UID": "0e6a1f4c-6b7d-4c1e-9a55-3f1d2c4b5a69",
}


class TestWorkerSettings(unittest.TestCase):
    """Environment validation."""

    def test_loads_from_env(self) -> None:
        with patch.dict(os.environ, ENV, clear=True):
            settings = load_worker_settings()
        self.assertEqual(settings.PLUGIN_NAME, "popeye")
        self.assertEqual(settings.done_path, "/tmp/zora/results/done")

    def test_missing_value(self) -> None:
        env = {k: v for k, v in ENV.items() if k != "CLUSTER_NAME"}
        with patch.dict(os.environ, env, clear=True):
            with self.assertRaises(WorkerConfigError) as ctx:
                load_worker_settings()
        self.assertIn("CLUSTER_NAME", ctx.exception.message)

    def test_job_name_without_suffix(self) -> None:
        for job_name in ("nodash", "trailing-"):
            with patch.dict(os.environ, {**ENV, "JOB_NAME": job_name}, clear=True):
                with self.assertRaises(WorkerConfigError):
                    load_worker_settings()


class TestDoneFile(unittest.TestCase):
    """Waiting for and reading the done file."""

    def test_wait_times_out(self) -> None:
        ticks = iter([0.0, 0.5, 1.5, 2.5])
        sleep = MagicMock()
        with self.assertRaises(WorkerConfigError):
            wait_for_done_file("/nonexistent/done", 1.0, 2.0, sleep=sleep, clock=lambda: next(ticks))
        self.assertEqual(sleep.call_count, 2)

    def test_wait_returns_when_present(self) -> None:
        with tempfile.NamedTemporaryFile() as f:
            sleep = MagicMock()
            wait_for_done_file(f.name, 1.0, 2.0, sleep=sleep)
            sleep.assert_not_called()

    def test_read_report_path(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            report = Path(d) / "report.json"
            report.write_text("{}")
            done = Path(d) / "done"
            done.write_text(f"{report}\n")
            self.assertEqual(read_report_path(str(done)), str(report))

    def test_empty_done_file(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            done = Path(d) / "done"
            done.write_text("  \n")
            with self.assertRaises(WorkerConfigError):
                read_report_path(str(done))

    def test_report_path_is_directory(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            done = Path(d) / "done"
            done.write_text(d)
            with self.assertRaises(WorkerConfigError):
                read_report_path(str(done))


class TestWorkerRun(unittest.TestCase):
    """Report to ClusterIssues through a mock gateway."""

    def _settings(self, done_dir: str, **overrides) -> WorkerSettings:
        return WorkerSettings(**{**ENV, "DONE_DIR": done_dir, **overrides})

    def test_creates_one_issue_per_code(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            (Path(d) / "done").write_text(str(TESTDATA / "popeye_report_mixed.json"))
            gateway = MagicMock()
            created = run(self._settings(d), gateway, wait=MagicMock())
        self.assertEqual(len(created), 3)
        self.assertIn("mycluster-pop-400-3f1d2c4b5a69", created)
        bodies = [c.args[1] for c in gateway.create_cluster_issue.call_args_list]
        self.assertTrue(all(b["metadata"]["namespace"] == "ns" for b in bodies))
        self.assertTrue(all(b["spec"]["cluster"] == "mycluster" for b in bodies))

    def test_unknown_plugin_fails_before_waiting(self) -> None:
        wait = MagicMock()
        with self.assertRaises(UnknownPluginError):
            run(self._settings("/tmp/unused", PLUGIN_NAME="trivy"), MagicMock(), wait=wait)
        wait.assert_not_called()
