"""Action-tagged messages exchanged between the tracker and page clients."""

from __future__ import annotations

import math
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


class UnknownActionError(ValueError):
    """Raised for messages whose action is unknown or whose payload is malformed."""


def _coerce_ms(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number)


class _Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AddDomainTime(_Message):
    action: Literal["addDomainTime"] = "addDomainTime"
    domain: Optional[str] = None
    delta_ms: int = Field(default=0, alias="deltaMs")

    @field_validator("delta_ms", mode="before")
    @classmethod
    def _delta(cls, value: Any) -> int:
        return _coerce_ms(value) or 0


class GetDomainTime(_Message):
    action: Literal["getDomainTime"] = "getDomainTime"
    domain: Optional[str] = None


class GetSummary(_Message):
    action: Literal["getSummary"] = "getSummary"


class ResetBreakShown(_Message):
    action: Literal["resetBreakShown"] = "resetBreakShown"


class _WithDuration(_Message):
    duration_ms: Optional[int] = Field(default=None, alias="durationMs")

    @field_validator("duration_ms", mode="before")
    @classmethod
    def _duration(cls, value: Any) -> Optional[int]:
        return _coerce_ms(value)


class StartBreakFromPopup(_WithDuration):
    action: Literal["startBreakFromPopup"] = "startBreakFromPopup"


class StartBreak(_WithDuration):
    action: Literal["startBreak"] = "startBreak"


class StartBreakGlobal(_WithDuration):
    action: Literal["startBreakGlobal"] = "startBreakGlobal"


class EndBreakGlobal(_Message):
    action: Literal["endBreakGlobal"] = "endBreakGlobal"


class ShowBreak(_Message):
    action: Literal["showBreak"] = "showBreak"
    reason: str = "long_work"
    threshold_ms: int = Field(alias="thresholdMs")


class GetBackToWork(_WithDuration):
    action: Literal["getBackToWork"] = "getBackToWork"
    reason: str = "distracted"


class ActiveCategory(_Message):
    action: Literal["activeCategory"] = "activeCategory"
    category: str


class IdleStateChanged(_Message):
    action: Literal["idleState"] = "idleState"
    state: Literal["active", "idle", "locked"]


class FocusChange(_Message):
    """A tab gained focus; ``url=None`` means no tab is focused."""

    action: Literal["focusChange"] = "focusChange"
    url: Optional[str] = None
    tab_id: Optional[int] = Field(default=None, alias="tabId")


class Summarize(_Message):
    action: Literal["summarize"] = "summarize"


Message = Annotated[
    Union[
        AddDomainTime,
        GetDomainTime,
        GetSummary,
        ResetBreakShown,
        StartBreakFromPopup,
        StartBreak,
        StartBreakGlobal,
        EndBreakGlobal,
        ShowBreak,
        GetBackToWork,
        ActiveCategory,
        IdleStateChanged,
        FocusChange,
        Summarize,
    ],
    Field(discriminator="action"),
]

_MESSAGE_ADAPTER: TypeAdapter[Message] = TypeAdapter(Message)


def parse_message(payload: Any) -> Message:
    """Validate a wire payload into its message model."""
    if isinstance(payload, BaseModel):
        payload = to_wire(payload)
    try:
        return _MESSAGE_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        action = payload.get("action") if isinstance(payload, dict) else None
        raise UnknownActionError(f"Cannot handle message with action={action!r}") from exc


def to_wire(message: BaseModel) -> dict[str, Any]:
    return message.model_dump(by_alias=True, exclude_none=True)
