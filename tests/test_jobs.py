"""Tests for the Job views: picking the latest run of a CronJob."""

import unittest

from kubescan.schemas.jobs import JobRun, latest_job


def _run(name: str, start_time: str | None = None) -> JobRun:
    status = {"startTime": start_time} if start_time else {}
    return JobRun.model_validate({"metadata": {"name": name, "uid": f"{name}-uid"}, "status": status})


class TestLatestJob(unittest.TestCase):
    """The most recently started Job wins whatever the listing order."""

    def test_empty(self) -> None:
        self.assertIsNone(latest_job([]))

    def test_latest_start_time_wins_in_any_order(self) -> None:
        jobs = [
            _run("mycluster-popeye-1", "2024-05-01T11:00:00Z"),
            _run("mycluster-popeye-3", "2024-05-01T13:00:00Z"),
            _run("mycluster-popeye-pending"),
            _run("mycluster-popeye-2", "2024-05-01T12:00:00Z"),
        ]
        self.assertEqual(latest_job(jobs).metadata.name, "mycluster-popeye-3")
        self.assertEqual(latest_job(list(reversed(jobs))).metadata.name, "mycluster-popeye-3")

    def test_unstarted_job_never_beats_a_started_one(self) -> None:
        jobs = [_run("mycluster-popeye-pending"), _run("mycluster-popeye-1", "2024-05-01T11:00:00Z")]
        self.assertEqual(latest_job(jobs).metadata.name, "mycluster-popeye-1")

    def test_only_unstarted_jobs_returns_first(self) -> None:
        jobs = [_run("mycluster-popeye-a"), _run("mycluster-popeye-b")]
        self.assertEqual(latest_job(jobs).metadata.name, "mycluster-popeye-a")
