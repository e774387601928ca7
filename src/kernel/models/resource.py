"""
Shared resource models: agents, rules and hooks.

Resources are owned by no project. Assignments reference them by
(resource_type, id) only, so edits to a resource show up in every project
that uses it.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Boolean, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, generate_id


class ResourceType(str, Enum):
    """Kinds of assignable resources."""
    AGENT = "agent"
    RULE = "rule"
    HOOK = "hook"


class HookEvent(str, Enum):
    """Lifecycle events a hook declaration can be bound to."""
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    NOTIFICATION = "Notification"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"


class Agent(Base, TimestampMixin):
    """A reusable assistant persona rendered into its own agent file."""

    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=generate_id,
    )
    # Used as the file stem: "review-pr" -> .claude/agents/review-pr.md
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    display_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
    )
    description: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )
    role: Mapped[str] = mapped_column(
        String(200),
        default="",
        nullable=False,
    )
    style: Mapped[str] = mapped_column(
        String(200),
        default="",
        nullable=False,
    )
    prompt_content: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )
    # {"allowedTools": ["Read", "Grep"], "model": "sonnet"}
    agent_config: Mapped[dict] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    icon: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
    )
    category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    is_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    resource_type = ResourceType.AGENT

    @property
    def is_available(self) -> bool:
        return bool(self.is_enabled)

    def __repr__(self) -> str:
        return f"<Agent {self.name}>"


class Rule(Base, TimestampMixin):
    """A coding rule or guideline aggregated into the rules document."""

    __tablename__ = "rules"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=generate_id,
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )
    rule_content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    category: Mapped[str] = mapped_column(
        String(100),
        default="general",
        nullable=False,
    )
    priority: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    tags: Mapped[list] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    resource_type = ResourceType.RULE

    @property
    def is_available(self) -> bool:
        return bool(self.is_active)

    def __repr__(self) -> str:
        return f"<Rule {self.name}>"


class Hook(Base, TimestampMixin):
    """A lifecycle hook declaration. Only its definition is exported."""

    __tablename__ = "hooks"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=generate_id,
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )
    trigger: Mapped[HookEvent] = mapped_column(
        String(30),
        nullable=False,
    )
    # Tool name or glob, only meaningful for tool-use events
    tool_matcher: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
    )
    command: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    working_directory: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )
    timeout_ms: Mapped[int] = mapped_column(
        Integer,
        default=60000,
        nullable=False,
    )
    is_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    resource_type = ResourceType.HOOK

    @property
    def is_available(self) -> bool:
        return bool(self.is_enabled)

    def __repr__(self) -> str:
        return f"<Hook {self.name}>"


Resource = Union[Agent, Rule, Hook]

RESOURCE_MODELS: Dict[ResourceType, Type[Resource]] = {
    ResourceType.AGENT: Agent,
    ResourceType.RULE: Rule,
    ResourceType.HOOK: Hook,
}


class ResourceRef(BaseModel):
    """Stable (resource_type, resource_id) handle. Hashable, never a copy of the resource."""

    model_config = ConfigDict(frozen=True)

    resource_type: ResourceType
    resource_id: str = Field(..., min_length=1, max_length=32)

    @property
    def key(self) -> str:
        return f"{self.resource_type.value}:{self.resource_id}"

    def sort_key(self) -> Tuple[str, str]:
        """Ascending resource id, resource type as tie-break."""
        return (self.resource_id, self.resource_type.value)

    @classmethod
    def parse(cls, key: str) -> "ResourceRef":
        """Build a ref from its "type:id" key."""
        resource_type, sep, resource_id = key.partition(":")
        if not sep:
            raise ValueError(f"Expected 'type:id', got {key!r}")
        return cls(resource_type=ResourceType(resource_type), resource_id=resource_id)

    @classmethod
    def of(cls, resource: "Resource") -> "ResourceRef":
        return cls(resource_type=resource.resource_type, resource_id=resource.id)

    def __str__(self) -> str:
        return self.key


def sort_refs(refs: Iterable[ResourceRef]) -> List[ResourceRef]:
    """Deterministic ordering used everywhere refs are listed."""
    return sorted(set(refs), key=ResourceRef.sort_key)
