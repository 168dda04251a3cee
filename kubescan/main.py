"""
Operator entrypoint. No business logic; only wiring.

  python -m kubescan.main
  kopf run -m kubescan.main --all-namespaces
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import sys

import kopf

import kubescan.controllers.clusterscan  # noqa: F401  (registers the handlers)
from kubescan.core.config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Run the ClusterScan operator across all namespaces until interrupted."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.LOG_LEVEL)
    try:
        kopf.run(clusterwide=True, liveness_endpoint=settings.LIVENESS_ENDPOINT)
        return 0
    except Exception as e:
        logger.exception("Operator failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
