"""Rule table: the Rails "where should this code go?" decision tree as data.

Rules are declared as ``RuleSpec`` entries (serialisable, so an alternate table
can be loaded from JSON) and compiled into frozen ``RoutingRule`` objects whose
predicates are pure functions of a ``ChangeRequest``. A ``RuleTable`` is only
ever built from a validated rule list:

- enabled rules have unique priorities (lower evaluates first),
- exactly one enabled catch-all exists and it is evaluated last.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from agent_router.core.errors import ConfigurationError
from agent_router.models.change_request import (
    SIGNAL_FLAGS,
    ChangeKind,
    ChangeRequest,
    ComplexitySignals,
    SignalFlag,
)
from agent_router.models.routing_models import AgentId, AgentOutcome, PolicyTier

log = structlog.get_logger(__name__)

Predicate = Callable[[ChangeRequest], bool]

CATCH_ALL_PRIORITY = 10_000


@dataclass(frozen=True)
class Thresholds:
    """Numeric cut-offs taken from the refactoring-signal tables."""

    multiple_models: int = 2
    join_tables: int = 3
    reuse_places: int = 3
    trivial_lines: int = 10
    controller_action_lines: int = 15
    fat_model_lines: int = 400

    @classmethod
    def from_settings(cls, settings: Any) -> Thresholds:
        return cls(
            multiple_models=settings.MULTIPLE_MODELS_THRESHOLD,
            join_tables=settings.JOIN_TABLES_THRESHOLD,
            reuse_places=settings.REUSE_THRESHOLD,
            trivial_lines=settings.TRIVIAL_LINE_LIMIT,
            controller_action_lines=settings.CONTROLLER_ACTION_LINE_LIMIT,
            fat_model_lines=settings.FAT_MODEL_LINE_LIMIT,
        )


def effective_flags(signals: ComplexitySignals, thresholds: Thresholds) -> frozenset[str]:
    """Flags set explicitly or implied by a count reaching its threshold."""
    flags = {name for name in SIGNAL_FLAGS if getattr(signals, name)}
    if signals.model_count is not None and signals.model_count >= thresholds.multiple_models:
        flags.add("spans_multiple_models")
    if signals.join_count is not None and signals.join_count >= thresholds.join_tables:
        flags.add("joins_three_plus_tables")
    if signals.reuse_count is not None and signals.reuse_count >= thresholds.reuse_places:
        flags.add("reused_in_three_plus_places")
    return frozenset(flags)


def always(_request: ChangeRequest) -> bool:
    return True


@dataclass(frozen=True)
class RoutingRule:
    """One (predicate, outcome) entry of the rule table."""

    priority: int
    name: str
    predicate: Predicate = field(compare=False, repr=False)
    outcome: AgentOutcome
    condition: str = ""
    enabled: bool = True
    catch_all: bool = False

    def __post_init__(self) -> None:
        if self.catch_all and self.predicate is not always:
            raise ConfigurationError(
                f"catch-all rule {self.name!r} must use the always-true predicate"
            )
        # Outcomes carry the rule that produced them.
        if self.outcome.rule != self.name or self.outcome.priority != self.priority:
            object.__setattr__(
                self,
                "outcome",
                self.outcome.model_copy(update={"rule": self.name, "priority": self.priority}),
            )
        if not self.condition:
            object.__setattr__(self, "condition", "always" if self.catch_all else self.name)

    def matches(self, request: ChangeRequest) -> bool:
        return bool(self.predicate(request))


class RuleSpec(BaseModel):
    """Declarative rule. All given conditions must hold for the rule to match.

    Line bounds apply to ``line_count_estimate`` and never match when the
    estimate is unknown.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    priority: int
    name: str = Field(..., min_length=1)
    kinds: list[ChangeKind] = Field(default_factory=list)
    all_of: list[SignalFlag] = Field(default_factory=list)
    any_of: list[SignalFlag] = Field(default_factory=list)
    none_of: list[SignalFlag] = Field(default_factory=list)
    lines_at_most: int | None = Field(default=None, ge=0)
    lines_over: int | None = Field(default=None, ge=0)
    host_file_lines_over: int | None = Field(default=None, ge=0)
    catch_all: bool = False

    agent: AgentId
    justification: str = Field(..., min_length=1)
    policy: PolicyTier = PolicyTier.always
    enabled: bool = True

    @model_validator(mode="after")
    def _catch_all_has_no_conditions(self) -> RuleSpec:
        if self.catch_all and self._has_conditions():
            raise ValueError(f"catch-all rule {self.name!r} cannot declare conditions")
        if not self.catch_all and not self._has_conditions():
            raise ValueError(f"rule {self.name!r} declares no conditions; mark it catch_all")
        return self

    def _has_conditions(self) -> bool:
        return bool(
            self.kinds or self.all_of or self.any_of or self.none_of
            or self.lines_at_most is not None
            or self.lines_over is not None
            or self.host_file_lines_over is not None
        )

    def describe(self) -> str:
        """Human-readable condition text."""
        if self.catch_all:
            return "always"
        parts = []
        if self.kinds:
            parts.append("kind in {" + ", ".join(k.value for k in self.kinds) + "}")
        parts.extend(self.all_of)
        if self.any_of:
            parts.append("(" + " or ".join(self.any_of) + ")")
        parts.extend(f"not {flag}" for flag in self.none_of)
        if self.lines_at_most is not None:
            parts.append(f"line_count_estimate <= {self.lines_at_most}")
        if self.lines_over is not None:
            parts.append(f"line_count_estimate > {self.lines_over}")
        if self.host_file_lines_over is not None:
            parts.append(f"host_file_lines > {self.host_file_lines_over}")
        return " and ".join(parts)

    def compile(self, thresholds: Thresholds | None = None) -> RoutingRule:
        thresholds = thresholds or Thresholds()
        outcome = AgentOutcome(agent=self.agent, justification=self.justification, policy=self.policy)
        if self.catch_all:
            return RoutingRule(
                priority=self.priority, name=self.name, predicate=always, outcome=outcome,
                condition="always", enabled=self.enabled, catch_all=True,
            )

        kinds = frozenset(self.kinds)
        all_of = frozenset(self.all_of)
        any_of = frozenset(self.any_of)
        none_of = frozenset(self.none_of)
        lines_at_most = self.lines_at_most
        lines_over = self.lines_over
        host_over = self.host_file_lines_over

        def predicate(request: ChangeRequest) -> bool:
            if kinds and request.kind not in kinds:
                return False
            signals = request.complexity_signals
            flags = effective_flags(signals, thresholds)
            if not all_of <= flags:
                return False
            if any_of and not any_of & flags:
                return False
            if none_of & flags:
                return False
            lines = signals.line_count_estimate
            if lines_at_most is not None and (lines is None or lines > lines_at_most):
                return False
            if lines_over is not None and (lines is None or lines <= lines_over):
                return False
            host = signals.host_file_lines
            if host_over is not None and (host is None or host <= host_over):
                return False
            return True

        return RoutingRule(
            priority=self.priority, name=self.name, predicate=predicate, outcome=outcome,
            condition=self.describe(), enabled=self.enabled,
        )


class RuleFile(BaseModel):
    """Top-level shape of an alternate rule table document."""

    model_config = ConfigDict(extra="forbid")

    rules: list[RuleSpec] = Field(..., min_length=1)


def validate(rules: Iterable[RoutingRule]) -> tuple[RoutingRule, ...]:
    """Check a rule list and return its enabled rules in evaluation order.

    Raises:
        ConfigurationError: duplicate priority or name among enabled rules,
            missing catch-all, more than one catch-all, a catch-all whose
            predicate is not `always`, or a catch-all that is not evaluated last.
    """
    enabled = [r for r in rules if r.enabled]

    by_priority: dict[int, RoutingRule] = {}
    names: set[str] = set()
    for rule in enabled:
        other = by_priority.get(rule.priority)
        if other is not None:
            raise ConfigurationError(
                f"rules {other.name!r} and {rule.name!r} share priority {rule.priority}"
            )
        if rule.name in names:
            raise ConfigurationError(f"duplicate rule name {rule.name!r}")
        by_priority[rule.priority] = rule
        names.add(rule.name)

    ordered = sorted(enabled, key=lambda r: r.priority)
    catch_alls = [r for r in ordered if r.catch_all]
    if not catch_alls:
        raise ConfigurationError("rule table has no catch-all rule")
    if len(catch_alls) > 1:
        raise ConfigurationError(
            "rule table has more than one catch-all: " + ", ".join(r.name for r in catch_alls)
        )
    if catch_alls[0].predicate is not always:
        raise ConfigurationError(
            f"catch-all rule {catch_alls[0].name!r} must use the always-true predicate"
        )
    if ordered[-1] is not catch_alls[0]:
        raise ConfigurationError(
            f"catch-all rule {catch_alls[0].name!r} (priority {catch_alls[0].priority}) "
            f"must be evaluated last; {ordered[-1].name!r} has priority {ordered[-1].priority}"
        )
    return tuple(ordered)


class RuleTable:
    """Validated, priority-ordered, immutable collection of rules."""

    __slots__ = ("_rules", "_by_name")

    def __init__(self, rules: Iterable[RoutingRule]) -> None:
        self._rules = validate(rules)
        self._by_name = {r.name: r for r in self._rules}

    @property
    def rules(self) -> tuple[RoutingRule, ...]:
        return self._rules

    def __iter__(self) -> Iterator[RoutingRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def get(self, name: str) -> RoutingRule | None:
        return self._by_name.get(name)

    def describe(self) -> list[dict[str, Any]]:
        return [
            {
                "priority": r.priority,
                "name": r.name,
                "condition": r.condition,
                "agent": r.outcome.agent.value,
                "policy": r.outcome.policy.value,
                "justification": r.outcome.justification,
            }
            for r in self._rules
        ]


def default_rule_specs(thresholds: Thresholds | None = None) -> list[RuleSpec]:
    """The decision tree, most specific checks first."""
    t = thresholds or Thresholds()
    bl = [ChangeKind.business_logic]
    return [
        RuleSpec(
            priority=10, name="external_api_call",
            kinds=[ChangeKind.business_logic, ChangeKind.http_handling], all_of=["calls_external_api"],
            agent=AgentId.service_agent,
            justification="External API calls are wrapped in a service object, never called from models or controllers.",
        ),
        RuleSpec(
            priority=20, name="multi_model_business_logic",
            kinds=bl, all_of=["spans_multiple_models"],
            agent=AgentId.service_agent,
            justification="Complex business logic spanning multiple models belongs in a service object.",
        ),
        RuleSpec(
            priority=30, name="trivial_business_logic",
            kinds=bl, none_of=["reused_in_three_plus_places"], lines_at_most=t.trivial_lines,
            agent=AgentId.inline, policy=PolicyTier.never,
            justification=(
                f"Logic of {t.trivial_lines} lines or fewer used in fewer than {t.reuse_places} places "
                "stays inline; no service_agent. Do not abstract trivial logic."
            ),
        ),
        RuleSpec(
            priority=40, name="reused_business_logic",
            kinds=bl, all_of=["reused_in_three_plus_places"],
            agent=AgentId.service_agent,
            justification=f"Business logic reused in {t.reuse_places}+ places is extracted into a service object.",
        ),
        RuleSpec(
            priority=50, name="business_logic",
            kinds=bl,
            agent=AgentId.service_agent,
            justification="Business operations beyond a few lines get a service object returning a result.",
        ),
        RuleSpec(
            priority=60, name="multi_table_query",
            kinds=[ChangeKind.complex_query], all_of=["joins_three_plus_tables"],
            agent=AgentId.query_agent,
            justification=f"Queries joining {t.join_tables}+ tables belong in a query object.",
        ),
        RuleSpec(
            priority=70, name="reused_query",
            kinds=[ChangeKind.complex_query], all_of=["reused_in_three_plus_places"],
            agent=AgentId.query_agent,
            justification=f"Queries reused in {t.reuse_places}+ places belong in a query object.",
        ),
        RuleSpec(
            priority=80, name="simple_query",
            kinds=[ChangeKind.complex_query],
            agent=AgentId.model_agent,
            justification="Simple queries stay on the model as chainable scopes.",
        ),
        RuleSpec(
            priority=90, name="data_formatting",
            kinds=[ChangeKind.data_formatting],
            agent=AgentId.presenter_agent,
            justification="Formatting and display logic goes in a presenter, not the model or the view.",
        ),
        RuleSpec(
            priority=100, name="shared_behavior_reused",
            kinds=[ChangeKind.shared_model_behavior], all_of=["reused_in_three_plus_places"],
            agent=AgentId.concern_agent, policy=PolicyTier.ask_first,
            justification=f"Behaviour shared across {t.reuse_places}+ models is extracted into a concern.",
        ),
        RuleSpec(
            priority=110, name="fat_model",
            kinds=[ChangeKind.shared_model_behavior], host_file_lines_over=t.fat_model_lines,
            agent=AgentId.concern_agent, policy=PolicyTier.ask_first,
            justification=f"Models over {t.fat_model_lines} lines are split into concerns.",
        ),
        RuleSpec(
            priority=120, name="shared_behavior_local",
            kinds=[ChangeKind.shared_model_behavior],
            agent=AgentId.model_agent,
            justification=f"Behaviour used by fewer than {t.reuse_places} models stays in the model until the third use.",
        ),
        RuleSpec(
            priority=130, name="authorization",
            kinds=[ChangeKind.authorization],
            agent=AgentId.policy_agent,
            justification="Authorization rules belong in a policy object.",
        ),
        RuleSpec(
            priority=140, name="reusable_ui",
            kinds=[ChangeKind.reusable_ui],
            agent=AgentId.component_agent,
            justification="Reusable UI is built as a tested ViewComponent.",
        ),
        RuleSpec(
            priority=150, name="async_work",
            kinds=[ChangeKind.async_work],
            agent=AgentId.job_agent,
            justification="Slow or deferred work runs in a background job.",
        ),
        RuleSpec(
            priority=160, name="multi_model_form",
            kinds=[ChangeKind.multi_model_form],
            agent=AgentId.form_agent,
            justification="Forms touching several models use a form object.",
        ),
        RuleSpec(
            priority=170, name="transactional_email",
            kinds=[ChangeKind.transactional_email],
            agent=AgentId.mailer_agent,
            justification="Transactional email is sent through a mailer, delivered later.",
        ),
        RuleSpec(
            priority=180, name="realtime_communication",
            kinds=[ChangeKind.realtime_communication],
            agent=AgentId.channel_agent,
            justification="Realtime updates use Action Cable channels and Turbo Stream broadcasts.",
        ),
        RuleSpec(
            priority=190, name="validation_only",
            kinds=[ChangeKind.validation_only],
            agent=AgentId.model_agent,
            justification="A single validation stays on the model.",
        ),
        RuleSpec(
            priority=200, name="multi_model_http_handling",
            kinds=[ChangeKind.http_handling], all_of=["spans_multiple_models"],
            agent=AgentId.service_agent,
            justification="Controller actions touching several models delegate to a service object.",
        ),
        RuleSpec(
            priority=210, name="fat_controller_action",
            kinds=[ChangeKind.http_handling], lines_over=t.controller_action_lines,
            agent=AgentId.service_agent,
            justification=f"Controller actions over {t.controller_action_lines} lines delegate to a service object.",
        ),
        RuleSpec(
            priority=220, name="http_handling",
            kinds=[ChangeKind.http_handling],
            agent=AgentId.controller_agent,
            justification="Plain request handling stays in a thin controller.",
        ),
        RuleSpec(
            priority=CATCH_ALL_PRIORITY, name="catch_all", catch_all=True,
            agent=AgentId.unmatched, policy=PolicyTier.ask_first,
            justification="No rule matched; ask a human where this change belongs.",
        ),
    ]


def build_default(thresholds: Thresholds | None = None) -> RuleTable:
    """Return the canonical rule table."""
    thresholds = thresholds or Thresholds()
    table = RuleTable(spec.compile(thresholds) for spec in default_rule_specs(thresholds))
    log.info("rule_table_built", source="default", rules=len(table))
    return table


def load_rules(path: str | Path, thresholds: Thresholds | None = None) -> RuleTable:
    """Load an alternate rule table from a JSON document ``{"rules": [...]}``.

    Raises:
        ConfigurationError: unreadable file, schema violation or invalid table.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"cannot read rule file {path}: {e}") from e

    try:
        doc = RuleFile.model_validate_json(raw)
    except ValidationError as e:
        raise ConfigurationError(f"invalid rule file {path}: {e}") from e

    thresholds = thresholds or Thresholds()
    table = RuleTable(spec.compile(thresholds) for spec in doc.rules)
    log.info("rule_table_built", source=str(path), rules=len(table))
    return table
