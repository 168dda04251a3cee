"""Views of batch/v1 CronJobs and Jobs as far as the ClusterScan controller reads them."""

from pydantic import Field

from kubescan.schemas.meta import CONDITION_TRUE, KubeModel, KubeTime, ObjectMeta

JOB_COMPLETE = "Complete"
JOB_FAILED = "Failed"


class CronJobSpecView(KubeModel):
    schedule: str = ""
    suspend: bool | None = None


class CronJobStatusView(KubeModel):
    active: list[dict] = Field(default_factory=list)
    last_schedule_time: KubeTime | None = None
    last_successful_time: KubeTime | None = None


class CronJob(KubeModel):
    metadata: ObjectMeta
    spec: CronJobSpecView = Field(default_factory=CronJobSpecView)
    status: CronJobStatusView = Field(default_factory=CronJobStatusView)


class JobCondition(KubeModel):
    type: str
    status: str
    last_transition_time: KubeTime | None = None
    reason: str | None = None
    message: str | None = None


class JobStatus(KubeModel):
    start_time: KubeTime | None = None
    completion_time: KubeTime | None = None
    active: int | None = None
    succeeded: int | None = None
    failed: int | None = None
    conditions: list[JobCondition] = Field(default_factory=list)


class JobRun(KubeModel):
    """One execution of a plugin's CronJob."""

    metadata: ObjectMeta
    status: JobStatus = Field(default_factory=JobStatus)

    def finished_condition(self) -> JobCondition | None:
        """The Complete or Failed condition when it is True, else None."""
        for c in self.status.conditions:
            if c.type in (JOB_COMPLETE, JOB_FAILED) and c.status == CONDITION_TRUE:
                return c
        return None


def latest_job(jobs: list[JobRun]) -> JobRun | None:
    """
    Return the most recently started Job.

    Jobs without a start time sort after every started Job.
    """
    if not jobs:
        return None
    started = [j for j in jobs if j.status.start_time is not None]
    if not started:
        return jobs[0]
    return sorted(started, key=lambda j: j.status.start_time, reverse=True)[0]
