"""
Worker sidecar: turns the report of the plugin running beside it into ClusterIssues.

Runs in every scan Job next to the plugin container:

  python -m kubescan.worker

The plugin writes the path of its report into <DONE_DIR>/done when it finishes.
"""

import logging
import os
import sys
import time
from typing import Callable

from pydantic import ValidationError

from kubescan.core.config import WorkerSettings
from kubescan.core.errors import KubescanError, WorkerConfigError
from kubescan.core.kube import KubernetesGateway, load_kube_config
from kubescan.services.gateway import KubeGateway
from kubescan.services.materialize import IssueMaterializer, MaterializeConfig, materialize, run_id_suffix
from kubescan.services.normalize import ReportNormalizer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def load_worker_settings() -> WorkerSettings:
    try:
        return WorkerSettings()
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise WorkerConfigError(f"Invalid worker configuration: {fields}") from e


def wait_for_done_file(
    path: str,
    poll_interval: float,
    timeout: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Block until path exists; WorkerConfigError after timeout seconds."""
    deadline = clock() + timeout
    while not os.path.exists(path):
        if clock() >= deadline:
            raise WorkerConfigError(f"Timed out after {timeout:.0f}s waiting for {path}")
        sleep(poll_interval)
    logger.info("Done file found: %s", path)


def read_report_path(done_path: str) -> str:
    """Return the report path written in the done file; it must name a regular file."""
    with open(done_path, encoding="utf-8") as f:
        report_path = f.read().strip()
    if not report_path:
        raise WorkerConfigError(f"Done file {done_path} is empty")
    if not os.path.isfile(report_path):
        raise WorkerConfigError(f"Report path {report_path!r} from {done_path} is not a regular file")
    return report_path


def run(
    settings: WorkerSettings,
    gateway: KubeGateway,
    normalizer: ReportNormalizer | None = None,
    wait: Callable[[str, float, float], None] = wait_for_done_file,
) -> list[str]:
    """Wait for the plugin, parse its report and create the ClusterIssues. Returns created names."""
    normalizer = normalizer or ReportNormalizer()
    # Fail before waiting on the plugin.
    normalizer.registry.get(settings.PLUGIN_NAME)
    run_id_suffix(settings.JOB_UID)

    config = MaterializeConfig(
        cluster=settings.CLUSTER_NAME,
        issues_namespace=settings.CLUSTER_ISSUES_NAMESPACE,
        plugin=settings.PLUGIN_NAME,
        job_name=settings.JOB_NAME,
        job_uid=settings.JOB_UID,
    )
    wait(settings.done_path, settings.DONE_POLL_INTERVAL_SEC, settings.DONE_TIMEOUT_SEC)
    report_path = read_report_path(settings.done_path)
    with open(report_path, "rb") as f:
        data = f.read()
    logger.info("Read %s report: path=%s bytes=%d", settings.PLUGIN_NAME, report_path, len(data))

    specs = normalizer.parse(settings.PLUGIN_NAME, data)
    issues = materialize(config, specs)
    return IssueMaterializer(gateway).create_all(issues)


def main() -> int:
    """Run the worker once; exit code 0 on success, 1 on any failure."""
    try:
        settings = load_worker_settings()
        load_kube_config("auto")
        created = run(settings, KubernetesGateway())
        logger.info(
            "Worker completed: plugin=%s job=%s issues=%d",
            settings.PLUGIN_NAME,
            settings.JOB_NAME,
            len(created),
        )
        return 0
    except KubescanError as e:
        logger.error("Worker failed: %s", e.message)
        return 1
    except Exception as e:
        logger.exception("Worker failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
