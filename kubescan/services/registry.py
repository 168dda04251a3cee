"""Plugin registry: plugin name -> report parser."""

from collections.abc import Callable, Iterator

from kubescan.core.errors import UnknownPluginError
from kubescan.schemas.issues import IssueSpec

ReportParser = Callable[[bytes], list[IssueSpec]]


class PluginRegistry:
    """
    Lookup table of report parsers.

    Registries are plain values: build one per process (or per test) and pass
    it to the ReportNormalizer instead of relying on module state.
    """

    def __init__(self, parsers: dict[str, ReportParser] | None = None) -> None:
        self._parsers: dict[str, ReportParser] = {}
        for name, parser in (parsers or {}).items():
            self.register(name, parser)

    def register(self, name: str, parser: ReportParser) -> None:
        key = (name or "").strip().lower()
        if not key:
            raise ValueError("plugin name must be non-empty")
        if key in self._parsers:
            raise ValueError(f"a parser is already registered for plugin {key!r}")
        self._parsers[key] = parser

    def get(self, name: str) -> ReportParser:
        """Return the parser of a plugin. Raises UnknownPluginError for unregistered names."""
        key = (name or "").strip().lower()
        try:
            return self._parsers[key]
        except KeyError:
            raise UnknownPluginError(
                f"Invalid plugin {name!r}; supported plugins: {', '.join(self.names()) or 'none'}"
            ) from None

    def names(self) -> list[str]:
        return sorted(self._parsers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._parsers

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())


def default_registry() -> PluginRegistry:
    """Registry with every parser shipped by kubescan."""
    from kubescan.services import popeye

    return PluginRegistry({popeye.PLUGIN_NAME: popeye.parse})
