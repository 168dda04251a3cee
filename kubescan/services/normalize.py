"""Normalize raw plugin reports to plugin-agnostic IssueSpecs."""

import logging

from kubescan.core.errors import ReportParseError
from kubescan.schemas.issues import IssueSpec
from kubescan.services.registry import PluginRegistry, default_registry

logger = logging.getLogger(__name__)


class ReportNormalizer:
    """Dispatch a report to the parser registered for its plugin."""

    def __init__(self, registry: PluginRegistry | None = None) -> None:
        self.registry = registry if registry is not None else default_registry()

    def parse(self, plugin: str, data: bytes) -> list[IssueSpec]:
        """
        Return the deduplicated IssueSpecs of one report.

        Raises UnknownPluginError before reading the report when the plugin is
        not registered, and ReportParseError when the report is unusable.
        """
        parser = self.registry.get(plugin)
        specs = parser(data)
        codes = [s.id for s in specs]
        if len(codes) != len(set(codes)):
            raise ReportParseError(f"Parser for plugin {plugin!r} returned duplicate issue codes")
        for spec in specs:
            counted = sum(len(names) for names in spec.resources.values())
            if counted != spec.total_resources:
                raise ReportParseError(
                    f"Issue {spec.id} counts {spec.total_resources} resources but lists {counted}"
                )
        logger.info("Parsed %s report: issues=%d", plugin, len(specs))
        return specs
