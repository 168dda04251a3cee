"""Operator and worker configuration loaded from environment variables."""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Kubernetes object names are DNS-1123 subdomains; kept module-level so validators can use it.
MAX_RESOURCE_NAME_LENGTH = 253

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class Settings(BaseSettings):
    """Validated operator settings from env and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    APP_ENV: Literal["dev", "prod"] = "dev"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Plugins used when a ClusterScan does not list any
    DEFAULT_PLUGINS_NAMESPACE: str = "zora-system"
    DEFAULT_PLUGINS_NAMES: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["popeye"])

    # Image of the sidecar that turns plugin reports into ClusterIssues
    WORKER_IMAGE: str = "ghcr.io/undistro/zora/worker:latest"

    # Shared identity granted to plugin pods in every namespace that runs scans
    CLUSTER_ROLE_BINDING_NAME: str = "zora-plugins"
    SERVICE_ACCOUNT_NAME: str = "zora-plugins"

    # Control loop timing
    RECONCILE_INTERVAL_SEC: float = 300.0
    RETRY_BACKOFF_SEC: float = 30.0

    # "auto" tries in-cluster config first and falls back to ~/.kube/config
    KUBE_IN_CLUSTER: Literal["auto", "true", "false"] = "auto"

    # Page size when listing ClusterIssues to count them
    ISSUE_LIST_PAGE_SIZE: int = Field(default=500, ge=1, le=5000)

    # Served by kopf; probes registered with kopf.on.probe report here
    LIVENESS_ENDPOINT: str = "http://0.0.0.0:8080/healthz"

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = (v or "").strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(VALID_LOG_LEVELS)}, got {v!r}")
        return level

    @field_validator("DEFAULT_PLUGINS_NAMES", mode="before")
    @classmethod
    def split_plugin_names(cls, v: object) -> object:
        # Accept "popeye,kubescape" from env as well as a real list.
        if isinstance(v, str):
            return [name.strip() for name in v.split(",") if name.strip()]
        return v

    @field_validator("DEFAULT_PLUGINS_NAMES")
    @classmethod
    def validate_plugin_names(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("DEFAULT_PLUGINS_NAMES must list at least one plugin")
        return v

    @field_validator(
        "DEFAULT_PLUGINS_NAMESPACE",
        "WORKER_IMAGE",
        "CLUSTER_ROLE_BINDING_NAME",
        "SERVICE_ACCOUNT_NAME",
    )
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value must be set and non-empty")
        if len(v.strip()) > MAX_RESOURCE_NAME_LENGTH:
            raise ValueError(f"value must be at most {MAX_RESOURCE_NAME_LENGTH} characters")
        return v.strip()

    @field_validator("RECONCILE_INTERVAL_SEC")
    @classmethod
    def validate_reconcile_interval(cls, v: float) -> float:
        if v < 10 or v > 86400:
            raise ValueError("RECONCILE_INTERVAL_SEC must be between 10 and 86400 (10 s to 1 day)")
        return v

    @field_validator("RETRY_BACKOFF_SEC")
    @classmethod
    def validate_retry_backoff(cls, v: float) -> float:
        if v <= 0 or v > 3600:
            raise ValueError("RETRY_BACKOFF_SEC must be greater than 0 and at most 3600")
        return v


class WorkerSettings(BaseSettings):
    """
    Settings of the worker sidecar that runs next to a plugin inside each Job.

    Values are injected by the CronJob template; JOB_NAME and JOB_UID come from
    the downward API so they are only known at run time.
    """

    model_config = SettingsConfigDict(extra="ignore", case_sensitive=False)

    PLUGIN_NAME: str
    CLUSTER_NAME: str
    CLUSTER_ISSUES_NAMESPACE: str
    JOB_NAME: str
    JOB_UID: str
    DONE_DIR: str = "/tmp/zora/results"

    # How long to wait for the plugin to write its "done" file
    DONE_POLL_INTERVAL_SEC: float = 2.0
    DONE_TIMEOUT_SEC: float = 3600.0

    @field_validator("PLUGIN_NAME", "CLUSTER_NAME", "CLUSTER_ISSUES_NAMESPACE", "JOB_UID", "DONE_DIR")
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value must be set and non-empty")
        return v.strip()

    @field_validator("JOB_NAME")
    @classmethod
    def validate_job_name(cls, v: str) -> str:
        # Job names generated by a CronJob always end with "-<suffix>".
        v = (v or "").strip()
        if not v:
            raise ValueError("JOB_NAME must be set and non-empty")
        idx = v.rfind("-")
        if idx == -1 or idx == len(v) - 1:
            raise ValueError(f"JOB_NAME must end with a '-<suffix>' segment, got {v!r}")
        return v

    @field_validator("DONE_POLL_INTERVAL_SEC")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0 or v > 60:
            raise ValueError("DONE_POLL_INTERVAL_SEC must be greater than 0 and at most 60")
        return v

    @field_validator("DONE_TIMEOUT_SEC")
    @classmethod
    def validate_done_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("DONE_TIMEOUT_SEC must be greater than 0")
        return v

    @property
    def done_path(self) -> str:
        return f"{self.DONE_DIR.rstrip('/')}/done"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance (safe to call from handlers)."""
    return Settings()


settings = get_settings()
