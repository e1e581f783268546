"""Pydantic models for routing outcomes and traces."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AgentId(str, Enum):
    model_agent = "model_agent"
    controller_agent = "controller_agent"
    service_agent = "service_agent"
    query_agent = "query_agent"
    presenter_agent = "presenter_agent"
    concern_agent = "concern_agent"
    policy_agent = "policy_agent"
    form_agent = "form_agent"
    component_agent = "component_agent"
    job_agent = "job_agent"
    mailer_agent = "mailer_agent"
    channel_agent = "channel_agent"
    # Not agents: keep the code where it is / hand the request to a person.
    inline = "inline"
    unmatched = "unmatched"


class PolicyTier(str, Enum):
    """Human-in-the-loop boundary attached to an outcome."""

    always = "always"
    ask_first = "ask_first"
    never = "never"


class AgentOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent: AgentId = Field(...)
    justification: str = Field(..., min_length=1)
    policy: PolicyTier = PolicyTier.always
    rule: str | None = None
    priority: int | None = None

    @property
    def is_agent(self) -> bool:
        """False for the inline and unmatched outcomes."""
        return self.agent not in (AgentId.inline, AgentId.unmatched)


class RuleEvaluation(BaseModel):
    model_config = ConfigDict(frozen=True)

    priority: int
    rule: str
    condition: str
    matched: bool


class RoutingTrace(BaseModel):
    """Rules evaluated for one request, in order, up to the first match."""

    model_config = ConfigDict(frozen=True)

    request: str
    evaluations: tuple[RuleEvaluation, ...] = ()
    outcome: AgentOutcome | None = None
