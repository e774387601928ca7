"""
Export templates, version 1.

Pure functions from an ordered assignment snapshot to file contents. Nothing
here touches storage or the clock: equal inputs render equal bytes.

Settings merge order: config overrides are applied in ascending
(assignment_order, resource_type, resource_id); when two assignments set the
same key the later one wins.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from src.engines.assembly.types import DependencyEdge
from src.kernel.models.dependency import DependencyKind
from src.kernel.models.project import Project
from src.kernel.models.resource import Agent, Hook, Resource, ResourceRef, ResourceType, Rule, sort_refs
from src.kernel.slugs import slugify

TEMPLATE_VERSION = "1"

MANIFEST_PATH = "CLAUDE.md"
SETTINGS_PATH = ".claude/settings.json"
AGENTS_DIR = ".claude/agents"
RULES_PATH = ".claude/rules.md"
HOOKS_PATH = ".claude/hooks.json"


@dataclass(frozen=True)
class RenderItem:
    """One assigned resource as the templates see it."""
    ref: ResourceRef
    resource: Resource
    is_primary: bool = False
    order: int = 0
    config_overrides: Dict[str, Any] = field(default_factory=dict)


def render_key(item: RenderItem):
    """Primaries first, then assignment order, then resource id."""
    return (not item.is_primary, item.order, item.ref.resource_id)


def of_type(items: Iterable[RenderItem], resource_type: ResourceType) -> List[RenderItem]:
    return sorted((i for i in items if i.ref.resource_type == resource_type), key=render_key)


def format_timestamp(value: datetime) -> str:
    """UTC, second precision, trailing Z. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def dump_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def _one_line(text: Optional[str]) -> str:
    return " ".join((text or "").split())


# ---------------------------------------------------------------------------
# CLAUDE.md
# ---------------------------------------------------------------------------

def primary_agent(agents: List[RenderItem]) -> Optional[RenderItem]:
    """The primary agent, else the first agent by order."""
    for item in agents:
        if item.is_primary:
            return item
    ordered = sorted(agents, key=lambda i: (i.order, i.ref.resource_id))
    return ordered[0] if ordered else None


def render_manifest(project: Project, agents: List[RenderItem], generated_at: str) -> str:
    lines = [f"# {project.name}", ""]

    lines += ["## Description", ""]
    lines.append(project.description.strip() if project.description else "_No description._")
    if project.project_info:
        lines += ["", project.project_info.strip()]
    lines.append("")

    lines += ["## Primary Agent", ""]
    primary = primary_agent(agents)
    if primary is None:
        lines.append("_None._")
    else:
        agent: Agent = primary.resource
        label = agent.display_name or agent.name
        entry = f"**{label}** (`{primary.ref.key}`)"
        if agent.role:
            entry += f" - {agent.role}"
        lines.append(entry)
        if agent.style:
            lines += ["", f"Communication style: {agent.style}"]
    lines.append("")

    lines += ["## Tags", ""]
    tags = [t for t in (project.tags or []) if t]
    lines += [f"- {t}" for t in tags] if tags else ["_None._"]
    lines.append("")

    lines += ["## Generated At", "", generated_at, ""]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# .claude/settings.json
# ---------------------------------------------------------------------------

def merge_settings(items: Iterable[RenderItem]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for item in sorted(items, key=lambda i: (i.order, i.ref.resource_type.value, i.ref.resource_id)):
        merged.update(item.config_overrides or {})
    return merged


def render_settings(items: Iterable[RenderItem]) -> str:
    return dump_json(merge_settings(items))


# ---------------------------------------------------------------------------
# .claude/agents/*.md
# ---------------------------------------------------------------------------

def agent_names(agents: List[RenderItem]) -> Dict[ResourceRef, str]:
    """File stem per agent, unique across the bundle.

    Colliding slugs get the first 8 id characters appended, or the whole id
    when that name is taken too. Unsuffixed names are reserved first.
    """
    stems = {item.ref: slugify(item.resource.name, fallback="agent") for item in agents}
    counts: Dict[str, int] = {}
    for stem in stems.values():
        counts[stem] = counts.get(stem, 0) + 1

    taken = {stem for stem in stems.values() if counts[stem] == 1}
    names: Dict[ResourceRef, str] = {}
    for ref in sort_refs(stems):
        stem = stems[ref]
        if counts[stem] == 1:
            names[ref] = stem
            continue
        name = f"{stem}-{ref.resource_id[:8]}"
        if name in taken:
            name = f"{stem}-{slugify(ref.resource_id, fallback='agent')}"
        suffix = 2
        base = name
        while name in taken:
            name = f"{base}-{suffix}"
            suffix += 1
        taken.add(name)
        names[ref] = name

    return {item.ref: names[item.ref] for item in agents}


def agent_path(name: str) -> str:
    return f"{AGENTS_DIR}/{name}.md"


def agent_paths(agents: List[RenderItem]) -> Dict[ResourceRef, str]:
    return {ref: agent_path(name) for ref, name in agent_names(agents).items()}


def render_agent(item: RenderItem, name: Optional[str] = None) -> str:
    """Front-matter then prompt. ``name`` defaults to the slug of the agent name."""
    agent: Agent = item.resource
    config = agent.agent_config or {}

    lines = ["---", f"name: {name or slugify(agent.name, fallback='agent')}"]
    description = _one_line(agent.description) or _one_line(agent.role)
    if description:
        lines.append(f"description: {description}")
    tools = config.get("allowedTools") or []
    if tools:
        lines.append(f"tools: {', '.join(str(t) for t in tools)}")
    if config.get("model"):
        lines.append(f"model: {config['model']}")
    lines += ["---", ""]

    if agent.role:
        lines += [f"You are {agent.display_name or agent.name}, {agent.role}.", ""]
    if agent.style:
        lines += [f"Communication style: {agent.style}", ""]
    if agent.prompt_content:
        lines += [agent.prompt_content.strip(), ""]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# .claude/rules.md
# ---------------------------------------------------------------------------

def rules_key(item: RenderItem):
    rule: Rule = item.resource
    return (item.order, rule.category or "", item.ref.resource_id)


def render_rules(rules: List[RenderItem], edges: Iterable[DependencyEdge]) -> str:
    """Rules by (order, category, id), each followed by its critical requires edges."""
    critical: Dict[ResourceRef, List[DependencyEdge]] = {}
    for edge in edges:
        if edge.kind == DependencyKind.REQUIRES and edge.critical:
            critical.setdefault(edge.source, []).append(edge)

    lines = ["# Project Rules", ""]
    for item in sorted(rules, key=rules_key):
        rule: Rule = item.resource
        lines += [f"## {rule.name}", "", f"_Category: {rule.category or 'general'}_", ""]
        if rule.description:
            lines += [rule.description.strip(), ""]
        lines += [rule.rule_content.strip(), ""]
        for edge in sorted(critical.get(item.ref, []), key=DependencyEdge.sort_key):
            lines.append(f"<!-- requires[critical]: {edge.target.key} -->")
        if critical.get(item.ref):
            lines.append("")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# .claude/hooks.json
# ---------------------------------------------------------------------------

def render_hooks(hooks: List[RenderItem]) -> str:
    """Hook declarations grouped by trigger event; entries keep assignment order."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for item in sorted(hooks, key=lambda i: (i.order, i.ref.resource_id)):
        hook: Hook = item.resource
        command: Dict[str, Any] = {
            "type": "command",
            "command": hook.command,
            "timeout": max(1, (hook.timeout_ms or 0) // 1000),
        }
        if hook.working_directory:
            command["cwd"] = hook.working_directory
        entry: Dict[str, Any] = {
            "id": item.ref.resource_id,
            "name": hook.name,
            "hooks": [command],
        }
        if hook.tool_matcher:
            entry["matcher"] = hook.tool_matcher
        trigger = getattr(hook.trigger, "value", hook.trigger)
        grouped.setdefault(trigger, []).append(entry)
    return dump_json({"hooks": grouped})
