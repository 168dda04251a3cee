"""Pydantic views of Kubernetes object metadata and status conditions."""

from datetime import datetime, timezone
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"


def format_kube_time(value: datetime) -> str:
    """Render a datetime the way the API server does (RFC 3339, seconds, UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# metav1.Time equivalent: parsed from RFC 3339 strings, written back without microseconds.
KubeTime = Annotated[
    datetime,
    AfterValidator(_as_utc),
    PlainSerializer(format_kube_time, return_type=str, when_used="json"),
]


class KubeModel(BaseModel):
    """Base for resource views: camelCase on the wire, snake_case in Python, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OwnerReference(KubeModel):
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = None


class ObjectMeta(KubeModel):
    name: str = ""
    namespace: str | None = None
    uid: str | None = None
    generation: int | None = None
    resource_version: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    owner_references: list[OwnerReference] = Field(default_factory=list)

    def controller_ref(self) -> OwnerReference | None:
        """Return the owner reference flagged as controller, if any."""
        for ref in self.owner_references:
            if ref.controller:
                return ref
        return None

    def is_controlled_by(self, uid: str | None) -> bool:
        ref = self.controller_ref()
        return ref is not None and uid is not None and ref.uid == uid


class LocalObjectReference(KubeModel):
    name: str = Field(..., min_length=1)


class Condition(KubeModel):
    """metav1.Condition: one entry of a status.conditions list."""

    type: str
    status: Literal["True", "False", "Unknown"]
    observed_generation: int | None = None
    last_transition_time: KubeTime | None = None
    reason: str = ""
    message: str = ""


def find_condition(conditions: list[Condition], condition_type: str) -> Condition | None:
    for c in conditions:
        if c.type == condition_type:
            return c
    return None


def set_condition(conditions: list[Condition], new: Condition, now: datetime | None = None) -> None:
    """
    Upsert a condition by type, preserving list order.

    lastTransitionTime only moves when the status value changes.
    """
    now = now or datetime.now(timezone.utc)
    existing = find_condition(conditions, new.type)
    if existing is None:
        if new.last_transition_time is None:
            new.last_transition_time = now
        conditions.append(new)
        return
    if existing.status != new.status:
        existing.status = new.status
        existing.last_transition_time = new.last_transition_time or now
    existing.reason = new.reason
    existing.message = new.message
    existing.observed_generation = new.observed_generation


def condition_is_true(conditions: list[Condition], condition_type: str) -> bool:
    c = find_condition(conditions, condition_type)
    return c is not None and c.status == CONDITION_TRUE
