"""Agent profile registry.

Each routing outcome names an agent profile; the registry holds what that
profile is for (the Rails artefacts it writes and example requests), so
``Router.explain`` and the HTTP catalogue can describe the chosen agent.

The registry is descriptive only. Which agent handles a change is decided by
the rule table in ``agent_router.routing.rules``.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from agent_router.models.routing_models import AgentId

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AgentProfile:
    """Metadata for one agent profile."""
    agent_id: AgentId
    name: str
    description: str
    artefacts: tuple[str, ...]
    examples: tuple[str, ...] = ()


class AgentRegistry:
    """In-memory registry of agent profiles keyed by AgentId."""

    def __init__(self) -> None:
        self._agents: dict[AgentId, AgentProfile] = {}

    def register(self, profile: AgentProfile) -> None:
        """Register (or replace) an agent profile."""
        self._agents[profile.agent_id] = profile
        log.debug("agent_registered", agent_id=profile.agent_id.value, name=profile.name)

    def unregister(self, agent_id: AgentId) -> bool:
        """Remove a profile. Returns False if it was not registered."""
        if agent_id in self._agents:
            del self._agents[agent_id]
            log.debug("agent_unregistered", agent_id=agent_id.value)
            return True
        return False

    def get(self, agent_id: AgentId) -> AgentProfile | None:
        return self._agents.get(agent_id)

    def get_all(self) -> list[AgentProfile]:
        """All profiles in AgentId declaration order."""
        order = {a: i for i, a in enumerate(AgentId)}
        return sorted(self._agents.values(), key=lambda p: order[p.agent_id])

    def build_catalog(self) -> str:
        """Markdown list of the registered agents."""
        lines = ["## Available Agents\n"]
        for i, profile in enumerate(self.get_all(), 1):
            lines.append(f"{i}. **{profile.agent_id.value}** - {profile.name}")
            lines.append(f"   - For: {profile.description}")
            lines.append(f"   - Writes: {', '.join(profile.artefacts)}")
            if profile.examples:
                lines.append(f"   - Examples: {', '.join(profile.examples[:3])}")
            lines.append("")
        return "\n".join(lines)


def create_default_registry() -> AgentRegistry:
    """Registry covering every AgentId that names a real agent."""
    registry = AgentRegistry()

    registry.register(AgentProfile(
        agent_id=AgentId.model_agent,
        name="ModelAgent",
        description="ActiveRecord models: validations, associations, scopes, callbacks",
        artefacts=("app/models/*.rb", "db/migrate/*.rb", "spec/models/*_spec.rb"),
        examples=('"Validate email format on User"', '"Add a published scope to Post"'),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.controller_agent,
        name="ControllerAgent",
        description="Thin RESTful controllers: params, responses, redirects, Turbo formats",
        artefacts=("app/controllers/*.rb", "config/routes.rb", "spec/requests/*_spec.rb"),
        examples=('"Add an archive action to ProjectsController"',),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.service_agent,
        name="ServiceAgent",
        description="Service objects for business operations spanning models or external APIs",
        artefacts=("app/services/*.rb", "spec/services/*_spec.rb"),
        examples=('"Place an order, charge the card and email a receipt"',),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.query_agent,
        name="QueryAgent",
        description="Query objects for complex, multi-table or reused queries",
        artefacts=("app/queries/*.rb", "spec/queries/*_spec.rb"),
        examples=('"Dashboard stats joining orders, users and products"',),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.presenter_agent,
        name="PresenterAgent",
        description="Presenters for display and formatting logic kept out of models and views",
        artefacts=("app/presenters/*.rb", "spec/presenters/*_spec.rb"),
        examples=('"Format order totals and status badges"',),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.concern_agent,
        name="ConcernAgent",
        description="Concerns for behaviour shared by three or more models",
        artefacts=("app/models/concerns/*.rb", "spec/models/concerns/*_spec.rb"),
        examples=('"Make Post, Comment and Page sluggable"',),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.policy_agent,
        name="PolicyAgent",
        description="Pundit policies for authorization rules",
        artefacts=("app/policies/*.rb", "spec/policies/*_spec.rb"),
        examples=('"Only owners and admins may edit a project"',),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.form_agent,
        name="FormAgent",
        description="Form objects for forms that create or update several models",
        artefacts=("app/forms/*.rb", "spec/forms/*_spec.rb"),
        examples=('"Signup form creating an account and its first user"',),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.component_agent,
        name="ComponentAgent",
        description="ViewComponents for reusable, tested UI pieces",
        artefacts=("app/components/*.rb", "app/components/*.html.erb", "spec/components/*_spec.rb"),
        examples=('"A card component used across dashboards"',),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.job_agent,
        name="JobAgent",
        description="Background jobs (Solid Queue) for slow or deferred work",
        artefacts=("app/jobs/*.rb", "spec/jobs/*_spec.rb"),
        examples=('"Generate the monthly report in the background"',),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.mailer_agent,
        name="MailerAgent",
        description="Action Mailer classes, templates and previews for transactional email",
        artefacts=("app/mailers/*.rb", "app/views/*_mailer/*", "spec/mailers/*_spec.rb"),
        examples=('"Send a welcome email after signup"',),
    ))
    registry.register(AgentProfile(
        agent_id=AgentId.channel_agent,
        name="ChannelAgent",
        description="Action Cable channels and Turbo Stream broadcasts for realtime updates",
        artefacts=("app/channels/*.rb", "spec/channels/*_spec.rb"),
        examples=('"Live-update the comment list when a comment is posted"',),
    ))

    return registry
