"""Core configuration, errors and the Kubernetes gateway."""

from kubescan.core.config import get_settings, settings

__all__ = ["get_settings", "settings"]
