"""
Hook output builders.

UserPromptSubmit hooks may add context with
    {"hookSpecificOutput": {"hookEventName": "UserPromptSubmit",
                            "additionalContext": "<string>"}}
and an empty object means "nothing to add". additionalContext must be a
string, so the structured activation result is rendered to markdown-ish text
before it is wrapped.
"""

from dataclasses import dataclass, field
from typing import List

from claude_skill_runtime.matcher import Match, ShadowMatch
from claude_skill_runtime.rules import Enforcement, Priority

RULE = "━" * 40


@dataclass
class GuaranteedSkill:
    name: str
    description: str
    content: str

    @property
    def usage(self) -> str:
        return f"/{self.name}"


@dataclass
class SkillSuggestion:
    name: str
    description: str
    reason: str


@dataclass
class ActivationResult:
    """What one prompt-submit invocation decided to surface."""
    guaranteed: List[GuaranteedSkill] = field(default_factory=list)
    suggested: List[SkillSuggestion] = field(default_factory=list)
    shadow: List[SkillSuggestion] = field(default_factory=list)
    matches: List[Match] = field(default_factory=list)
    modified_files: List[str] = field(default_factory=list)
    active_domains: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.guaranteed or self.suggested or self.shadow)


def match_channel(match: Match) -> str:
    if match.prompt_match and match.file_match:
        return "prompt + files"
    if match.prompt_match:
        return "prompt"
    return "files"


def suggestion_from_match(match: Match) -> SkillSuggestion:
    return SkillSuggestion(
        name=match.skill_name,
        description=match.rule.description,
        reason=f"Matched {match_channel(match)} triggers: {match.reason}",
    )


def suggestion_from_shadow(match: ShadowMatch) -> SkillSuggestion:
    return SkillSuggestion(
        name=match.skill_name,
        description=match.rule.description,
        reason=match.reason,
    )


def format_skill_context(result: ActivationResult) -> str:
    """Render an activation result as the additionalContext string."""
    sections: List[str] = ["<skill-activation>"]

    if result.guaranteed:
        sections.append("## Loaded skills\n")
        for skill in result.guaranteed:
            sections.append(f"### {skill.name}")
            if skill.description:
                sections.append(f"{skill.description}\n")
            sections.append(skill.content.rstrip() + "\n")

    if result.suggested:
        sections.append("## Suggested skills\n")
        for s in result.suggested:
            line = f"- {s.name}"
            if s.description:
                line += f": {s.description}"
            sections.append(line)
            sections.append(f"  Reason: {s.reason}")
        sections.append("\nLoad a suggested skill with /<skill-name> if it applies.\n")

    if result.shadow:
        sections.append("## Related skills (manual)\n")
        for s in result.shadow:
            line = f"- {s.name}"
            if s.description:
                line += f": {s.description}"
            sections.append(line)
            sections.append(f"  Reason: {s.reason}")
        sections.append("")

    if result.modified_files or result.active_domains:
        sections.append("## Active context\n")
        if result.active_domains:
            sections.append(f"Domains: {', '.join(result.active_domains)}")
        if result.modified_files:
            sections.append(f"Modified files: {', '.join(result.modified_files)}")

    sections.append("</skill-activation>")
    return "\n".join(sections)


def build_user_prompt_submit_output(additional_context: str) -> dict:
    return {
        "hookSpecificOutput": {
            "hookEventName": "UserPromptSubmit",
            "additionalContext": additional_context,
        }
    }


def render_json_output(result: ActivationResult) -> dict:
    """Hook JSON for a result; {} when there is nothing to surface."""
    if result.is_empty:
        return {}
    return build_user_prompt_submit_output(format_skill_context(result))


def render_text_report(result: ActivationResult) -> str:
    """Banner-style report grouped by priority and enforcement; '' when empty."""
    if result.is_empty:
        return ""

    lines = ["", RULE, "🎯 SKILL ACTIVATION CHECK", RULE, ""]
    if result.active_domains:
        lines += [f"📁 Active Context: {', '.join(result.active_domains)}", ""]

    if result.guaranteed:
        lines += ["🔒 AUTO-LOADED SKILLS:", ""]
        for skill in result.guaranteed:
            lines += [RULE, f"🔒 AUTO-LOADED: {skill.name}", RULE, ""]
            if skill.description:
                lines.append(f"Reason: {skill.description}")
            lines += ["", skill.content.rstrip(), ""]

    by_name = {m.skill_name: m for m in result.matches}
    suggested = [by_name[s.name] for s in result.suggested if s.name in by_name]

    warnings = [m for m in suggested
                if m.rule.enforcement is Enforcement.WARN and m.rule.priority is not Priority.LOW]
    if warnings:
        lines += ["⚠️  IMPORTANT WARNINGS:", ""]
        for m in warnings:
            lines += [f"  ⚠️  {m.skill_name}", f"     {m.rule.description}"]
        lines.append("")

    shown = {m.skill_name for m in warnings}
    recommended = [m for m in suggested
                   if m.skill_name not in shown
                   and m.rule.priority in (Priority.CRITICAL, Priority.HIGH)]
    if recommended:
        lines += ["📚 RECOMMENDED SKILLS:", ""]
        for m in recommended:
            lines.append(f"  → {m.skill_name} ({match_channel(m)})")
        lines.append("")

    shown.update(m.skill_name for m in recommended)
    others = [m for m in suggested if m.skill_name not in shown]
    if others:
        lines += ["💡 SUGGESTED SKILLS:", ""]
        for m in others:
            lines.append(f"  → {m.skill_name}")
        lines.append("")

    if result.shadow:
        lines += [RULE, "💭 MANUAL SKILL SUGGESTIONS", "",
                  "The following manual-only skills might help:", ""]
        for s in result.shadow:
            lines += [f"  → {s.name}", f"    {s.description}", f"    Reason: {s.reason}", ""]
        lines += ["To load: Use /<skill-name> or ask explicitly.", ""]

    lines += [RULE, ""]
    return "\n".join(lines)
