"""Router: public facade over one validated rule table.

Usage:
    router = get_router()
    outcome = router.route(ChangeRequest(kind="complex_query",
                                         complexity_signals={"joins_three_plus_tables"}))
    outcome.agent          # AgentId.query_agent
    print(router.explain(request))

The router holds no per-request state. Its rule table is built and validated
once in ``__init__`` and never mutated, so ``route`` may be called from any
number of threads or tasks concurrently.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable

import structlog

from agent_router.agents.registry import AgentRegistry, create_default_registry
from agent_router.core.errors import UnmatchedRequestError
from agent_router.core.settings import Settings, get_settings
from agent_router.models.change_request import ChangeRequest
from agent_router.models.routing_models import AgentOutcome, RoutingTrace
from agent_router.routing.classifier import classify, evaluate
from agent_router.routing.rules import RoutingRule, RuleTable, Thresholds, build_default, load_rules

log = structlog.get_logger(__name__)


class Router:
    """Routes change requests to agent profiles.

    A ConfigurationError raised while validating ``rules`` propagates out of
    the constructor; there is no partially-initialised router.
    """

    def __init__(
        self,
        rules: RuleTable | Iterable[RoutingRule] | None = None,
        *,
        registry: AgentRegistry | None = None,
    ) -> None:
        if rules is None:
            rules = build_default()
        elif not isinstance(rules, RuleTable):
            rules = RuleTable(rules)
        self._rules = rules
        self._registry = registry or create_default_registry()
        log.info("router_ready", rules=len(self._rules))

    @classmethod
    def from_settings(cls, settings: Settings) -> Router:
        """Build from RULES_FILE if set, otherwise from the default decision tree."""
        thresholds = Thresholds.from_settings(settings)
        if settings.RULES_FILE:
            rules = load_rules(settings.RULES_FILE, thresholds)
        else:
            rules = build_default(thresholds)
        return cls(rules)

    @property
    def rules(self) -> RuleTable:
        return self._rules

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    def route(self, request: ChangeRequest) -> AgentOutcome:
        """Return the agent outcome for a request."""
        outcome = classify(request, self._rules)
        log.info(
            "request_routed",
            kind=request.kind.value,
            agent=outcome.agent.value,
            rule=outcome.rule,
            policy=outcome.policy.value,
        )
        return outcome

    def trace(self, request: ChangeRequest) -> RoutingTrace:
        """Structured record of the rules checked for a request."""
        return evaluate(request, self._rules)

    def explain(self, request: ChangeRequest) -> str:
        """Human-readable trace of which rule matched and why."""
        return self.render_trace(request, self.trace(request))

    def route_with_explanation(self, request: ChangeRequest) -> tuple[AgentOutcome, str]:
        """Outcome and explanation text taken from a single evaluation pass."""
        trace = self.trace(request)
        if trace.outcome is None:
            raise UnmatchedRequestError(f"no rule matched {request.summary()}")
        outcome = trace.outcome
        log.info(
            "request_explained",
            kind=request.kind.value,
            agent=outcome.agent.value,
            rule=outcome.rule,
            policy=outcome.policy.value,
        )
        return outcome, self.render_trace(request, trace)

    def render_trace(self, request: ChangeRequest, trace: RoutingTrace) -> str:
        lines = [f"Request: {trace.request}"]
        if request.description:
            lines.append(f"Description: {request.description}")
        lines.append("Rules evaluated:")
        for ev in trace.evaluations:
            verdict = "MATCH" if ev.matched else "no match"
            lines.append(f"  [{ev.priority:>5}] {ev.rule}: {ev.condition} -> {verdict}")

        outcome = trace.outcome
        if outcome is None:
            lines.append("Outcome: none (rule list has no catch-all)")
            return "\n".join(lines)

        profile = self._registry.get(outcome.agent)
        if profile is not None:
            lines.append(f"Outcome: {outcome.agent.value} ({profile.name}: {profile.description})")
        else:
            lines.append(f"Outcome: {outcome.agent.value}")
        lines.append(f"Rule: {outcome.rule} (priority {outcome.priority})")
        lines.append(f"Justification: {outcome.justification}")
        lines.append(f"Policy: {outcome.policy.value}")
        return "\n".join(lines)

    def get_supported_agents(self) -> list[str]:
        """Agents reachable through the current rule table, in rule order."""
        seen: list[str] = []
        for rule in self._rules:
            agent = rule.outcome.agent.value
            if agent not in seen:
                seen.append(agent)
        return seen


@lru_cache(maxsize=1)
def get_router() -> Router:
    """Return the process-wide router built from settings."""
    return Router.from_settings(get_settings())
