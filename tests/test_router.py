"""Tests for the Router facade: decision tree scenarios and routing properties."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import json

import pytest

from agent_router.core.errors import ConfigurationError
from agent_router.core.settings import Settings, get_settings
from agent_router.models.change_request import ChangeKind, ChangeRequest
from agent_router.models.routing_models import AgentId, AgentOutcome, PolicyTier
from agent_router.routing.router import Router, get_router
from agent_router.routing.rules import RoutingRule, always


@pytest.fixture(scope="module")
def router() -> Router:
    return Router()


# =============================================================================
# Decision tree scenarios
# =============================================================================

def test_multi_model_business_logic_goes_to_service_agent(router):
    outcome = router.route(ChangeRequest(kind="business_logic", complexity_signals={"spans_multiple_models"}))
    assert outcome.agent is AgentId.service_agent


def test_three_table_join_goes_to_query_agent(router):
    outcome = router.route(ChangeRequest(kind="complex_query", complexity_signals={"joins_three_plus_tables"}))
    assert outcome.agent is AgentId.query_agent


def test_formatting_goes_to_presenter_agent(router):
    assert router.route(ChangeRequest(kind="data_formatting")).agent is AgentId.presenter_agent


def test_single_validation_goes_to_model_agent(router):
    assert router.route(ChangeRequest(kind="validation_only")).agent is AgentId.model_agent


def test_plain_http_handling_goes_to_controller_agent(router):
    assert router.route(ChangeRequest(kind="http_handling")).agent is AgentId.controller_agent


def test_trivial_business_logic_stays_inline(router):
    outcome = router.route(ChangeRequest(
        kind="business_logic",
        complexity_signals={"reused_in_three_plus_places": False, "line_count_estimate": 5},
    ))
    assert outcome.agent is AgentId.inline
    assert outcome.policy is PolicyTier.never
    assert "no service_agent" in outcome.justification
    assert not outcome.is_agent


@pytest.mark.parametrize(
    ("kind", "signals", "expected"),
    [
        ("business_logic", {"calls_external_api": True, "line_count_estimate": 3}, AgentId.service_agent),
        ("business_logic", {"reuse_count": 3, "line_count_estimate": 4}, AgentId.service_agent),
        ("business_logic", {"line_count_estimate": 40}, AgentId.service_agent),
        ("complex_query", {"reused_in_three_plus_places": True}, AgentId.query_agent),
        ("complex_query", {"join_count": 2}, AgentId.model_agent),
        ("shared_model_behavior", {"reused_in_three_plus_places": True}, AgentId.concern_agent),
        ("shared_model_behavior", {"host_file_lines": 401}, AgentId.concern_agent),
        ("shared_model_behavior", {"host_file_lines": 400}, AgentId.model_agent),
        ("authorization", {}, AgentId.policy_agent),
        ("reusable_ui", {}, AgentId.component_agent),
        ("async_work", {}, AgentId.job_agent),
        ("multi_model_form", {}, AgentId.form_agent),
        ("transactional_email", {}, AgentId.mailer_agent),
        ("realtime_communication", {}, AgentId.channel_agent),
        ("http_handling", {"calls_external_api": True}, AgentId.service_agent),
        ("http_handling", {"model_count": 3}, AgentId.service_agent),
        ("http_handling", {"line_count_estimate": 16}, AgentId.service_agent),
        ("http_handling", {"line_count_estimate": 15}, AgentId.controller_agent),
    ],
)
def test_decision_tree(router, kind, signals, expected):
    assert router.route(ChangeRequest(kind=kind, complexity_signals=signals)).agent is expected


# =============================================================================
# Properties
# =============================================================================

def test_every_kind_routes_to_a_definite_outcome(router):
    for kind in ChangeKind:
        outcome = router.route(ChangeRequest(kind=kind))
        assert isinstance(outcome, AgentOutcome)
        assert outcome.agent is not AgentId.unmatched


def test_routing_is_deterministic(router):
    req = ChangeRequest(kind="business_logic", complexity_signals={"reuse_count": 5})
    assert router.route(req) == router.route(req)
    assert router.explain(req) == router.explain(req)


def test_concurrent_routing_matches_sequential(router):
    requests = [ChangeRequest(kind=k) for k in ChangeKind] * 20
    expected = [router.route(r) for r in requests]
    with ThreadPoolExecutor(max_workers=8) as pool:
        actual = list(pool.map(router.route, requests))
    assert actual == expected


def test_custom_table_reaches_catch_all():
    rules = [
        RoutingRule(priority=1, name="auth", predicate=lambda r: r.kind is ChangeKind.authorization,
                    outcome=AgentOutcome(agent=AgentId.policy_agent, justification="auth")),
        RoutingRule(priority=2, name="fallback", predicate=always, catch_all=True,
                    outcome=AgentOutcome(agent=AgentId.unmatched, justification="ask", policy=PolicyTier.ask_first)),
    ]
    router = Router(rules)
    outcome = router.route(ChangeRequest(kind="async_work"))
    assert outcome.agent is AgentId.unmatched
    assert outcome.policy is PolicyTier.ask_first
    assert router.get_supported_agents() == ["policy_agent", "unmatched"]


def test_invalid_table_prevents_router_construction():
    rules = [
        RoutingRule(priority=1, name="a", predicate=always,
                    outcome=AgentOutcome(agent=AgentId.model_agent, justification="a")),
        RoutingRule(priority=1, name="b", predicate=always, catch_all=True,
                    outcome=AgentOutcome(agent=AgentId.unmatched, justification="b")),
    ]
    with pytest.raises(ConfigurationError):
        Router(rules)


# =============================================================================
# explain()
# =============================================================================

def test_explain_lists_evaluated_rules_and_outcome(router):
    text = router.explain(ChangeRequest(
        kind="complex_query",
        complexity_signals={"joins_three_plus_tables"},
        description="Dashboard revenue by region",
    ))
    lines = text.splitlines()
    assert lines[0] == "Request: kind=complex_query signals=[joins_three_plus_tables]"
    assert "Description: Dashboard revenue by region" in lines
    assert any("multi_table_query" in line and line.endswith("MATCH") for line in lines)
    assert "Outcome: query_agent (QueryAgent:" in text
    assert "Rule: multi_table_query (priority 60)" in lines
    assert "Policy: always" in lines


def test_explain_marks_non_matching_rules(router):
    text = router.explain(ChangeRequest(kind="http_handling"))
    assert "external_api_call" in text
    assert "-> no match" in text
    assert text.count("-> MATCH") == 1


def test_trace_matches_route(router):
    req = ChangeRequest(kind="multi_model_form")
    assert router.trace(req).outcome == router.route(req)


# =============================================================================
# Settings wiring
# =============================================================================

def test_from_settings_applies_thresholds():
    router = Router.from_settings(Settings(TRIVIAL_LINE_LIMIT=3))
    req = ChangeRequest(kind="business_logic", complexity_signals={"line_count_estimate": 5})
    assert router.route(req).agent is AgentId.service_agent
    assert Router().route(req).agent is AgentId.inline


def test_from_settings_loads_rules_file(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({"rules": [
        {"priority": 1, "name": "fallback", "catch_all": True, "agent": "unmatched", "justification": "Ask."},
    ]}))
    router = Router.from_settings(Settings(RULES_FILE=str(path)))
    assert len(router.rules) == 1
    assert router.route(ChangeRequest(kind="authorization")).agent is AgentId.unmatched


def test_from_settings_bad_rules_file_is_fatal(tmp_path):
    with pytest.raises(ConfigurationError):
        Router.from_settings(Settings(RULES_FILE=str(tmp_path / "missing.json")))


def test_get_router_is_process_wide():
    get_settings.cache_clear()
    get_router.cache_clear()
    try:
        assert get_router() is get_router()
        assert len(get_router().rules) > 1
    finally:
        get_router.cache_clear()
        get_settings.cache_clear()


def test_route_with_explanation_uses_one_trace(router):
    req = ChangeRequest(kind="shared_model_behavior", complexity_signals={"host_file_lines": 450})
    outcome, text = router.route_with_explanation(req)
    assert outcome == router.route(req)
    assert text == router.explain(req)
    assert "Rule: fat_model (priority 110)" in text
