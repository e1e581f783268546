"""Pydantic value objects describing one unit of Rails work to route."""

from __future__ import annotations

from enum import Enum
from collections.abc import Mapping
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from agent_router.core.errors import InvalidRequestError


class ChangeKind(str, Enum):
    data_formatting = "data_formatting"
    business_logic = "business_logic"
    complex_query = "complex_query"
    shared_model_behavior = "shared_model_behavior"
    authorization = "authorization"
    reusable_ui = "reusable_ui"
    async_work = "async_work"
    multi_model_form = "multi_model_form"
    transactional_email = "transactional_email"
    realtime_communication = "realtime_communication"
    validation_only = "validation_only"
    http_handling = "http_handling"


# Boolean complexity flags a caller may set directly.
SignalFlag = Literal[
    "spans_multiple_models",
    "calls_external_api",
    "joins_three_plus_tables",
    "reused_in_three_plus_places",
]

SIGNAL_FLAGS: tuple[str, ...] = get_args(SignalFlag)


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "request"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


class ComplexitySignals(BaseModel):
    """Flags and size estimates that push a change towards an abstraction.

    Accepts a mapping of field values or an iterable of flag names, so
    ``{"spans_multiple_models"}`` is shorthand for that flag being true.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())

    spans_multiple_models: bool = False
    calls_external_api: bool = False
    joins_three_plus_tables: bool = False
    reused_in_three_plus_places: bool = False

    line_count_estimate: int | None = Field(default=None, ge=0)
    model_count: int | None = Field(default=None, ge=0)
    join_count: int | None = Field(default=None, ge=0)
    reuse_count: int | None = Field(default=None, ge=0)
    # Size of the file the code would land in (e.g. the model being extended)
    host_file_lines: int | None = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _accept_flag_names(cls, data: Any) -> Any:
        if isinstance(data, (set, frozenset, list, tuple)):
            names = [str(item) for item in data]
            unknown = sorted(n for n in names if n not in SIGNAL_FLAGS)
            if unknown:
                raise ValueError(f"unknown complexity signal(s): {', '.join(unknown)}")
            return {name: True for name in names}
        return data

    def summary(self) -> str:
        """Compact `name=value` rendering of the non-default signals."""
        parts = []
        for name, value in self.model_dump().items():
            if value is None or value is False:
                continue
            parts.append(name if value is True else f"{name}={value}")
        return ", ".join(parts) or "none"


class ChangeRequest(BaseModel):
    """One change to classify. Immutable; construction fails fast on bad input."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ChangeKind
    complexity_signals: ComplexitySignals = Field(default_factory=ComplexitySignals)
    description: str | None = None
    # Request-scoped context travels explicitly with the request, stored as
    # sorted (key, value) pairs so the request stays immutable and hashable.
    metadata: tuple[tuple[str, str], ...] = ()

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise InvalidRequestError(_describe(exc)) from exc

    @field_validator("metadata", mode="before")
    @classmethod
    def _freeze_metadata(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return tuple(sorted(value.items(), key=lambda kv: str(kv[0])))
        return value

    def get_metadata(self, key: str, default: str | None = None) -> str | None:
        return dict(self.metadata).get(key, default)

    @classmethod
    def parse(cls, data: Any) -> ChangeRequest:
        """Build a request from a dict or a JSON document."""
        try:
            if isinstance(data, (str, bytes)):
                return cls.model_validate_json(data)
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidRequestError(_describe(exc)) from exc

    def summary(self) -> str:
        return f"kind={self.kind.value} signals=[{self.complexity_signals.summary()}]"
