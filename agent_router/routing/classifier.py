"""First-match rule evaluation over an ordered rule list."""

from __future__ import annotations

from typing import Iterable

from agent_router.core.errors import ConfigurationError, UnmatchedRequestError
from agent_router.models.change_request import ChangeRequest
from agent_router.models.routing_models import AgentOutcome, RoutingTrace, RuleEvaluation
from agent_router.routing.rules import RoutingRule


def _ordered(rules: Iterable[RoutingRule]) -> list[RoutingRule]:
    # RuleTable is already ordered; a plain list may not be.
    return sorted((r for r in rules if r.enabled), key=lambda r: r.priority)


def _matches(rule: RoutingRule, request: ChangeRequest) -> bool:
    try:
        return rule.matches(request)
    except Exception as e:
        raise ConfigurationError(f"predicate of rule {rule.name!r} raised: {e!r}") from e


def classify(request: ChangeRequest, rules: Iterable[RoutingRule]) -> AgentOutcome:
    """Return the outcome of the first rule (ascending priority) matching the request.

    Raises:
        UnmatchedRequestError: no rule matched; only possible when the rule list
            was never validated and lacks a catch-all.
        ConfigurationError: a predicate raised.
    """
    for rule in _ordered(rules):
        if _matches(rule, request):
            return rule.outcome
    raise UnmatchedRequestError(f"no rule matched {request.summary()}")


def evaluate(request: ChangeRequest, rules: Iterable[RoutingRule]) -> RoutingTrace:
    """Evaluate rules in order up to the first match and record every check."""
    evaluations: list[RuleEvaluation] = []
    outcome: AgentOutcome | None = None
    for rule in _ordered(rules):
        matched = _matches(rule, request)
        evaluations.append(RuleEvaluation(
            priority=rule.priority, rule=rule.name, condition=rule.condition, matched=matched,
        ))
        if matched:
            outcome = rule.outcome
            break
    return RoutingTrace(request=request.summary(), evaluations=tuple(evaluations), outcome=outcome)
