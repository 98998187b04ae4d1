"""
Skill rule model and the validation boundary that builds it.

Raw configuration (a dict loaded from skill-rules.yaml/json) goes through
parse_skill_rules() exactly once. Everything downstream, the matcher in
particular, only ever sees the frozen SkillRule values produced here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from claude_skill_runtime.errors import ConfigError, PatternError
from claude_skill_runtime.patterns import CompiledPattern, PatternKind, compile_patterns


class ActivationStrategy(str, Enum):
    GUARANTEED = "guaranteed"
    SUGGESTIVE = "suggestive"
    # Deprecated: prompt-based hooks cannot make activation decisions, so
    # configs that still declare it behave as native_only.
    PROMPT_ENHANCED = "prompt_enhanced"
    NATIVE_ONLY = "native_only"

    @property
    def effective(self) -> "ActivationStrategy":
        if self is ActivationStrategy.PROMPT_ENHANCED:
            return ActivationStrategy.NATIVE_ONLY
        return self

    @property
    def is_deprecated(self) -> bool:
        return self is ActivationStrategy.PROMPT_ENHANCED

    @property
    def is_actionable(self) -> bool:
        """True if matches with this strategy produce hook output."""
        return self.effective in (ActivationStrategy.GUARANTEED,
                                  ActivationStrategy.SUGGESTIVE)


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, lower is more important."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class Enforcement(str, Enum):
    BLOCK = "block"
    WARN = "warn"
    SUGGEST = "suggest"


@dataclass(frozen=True)
class PromptTriggers:
    keywords: Tuple[CompiledPattern, ...] = ()
    intent_patterns: Tuple[CompiledPattern, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.keywords or self.intent_patterns)


@dataclass(frozen=True)
class FileTriggers:
    path_patterns: Tuple[CompiledPattern, ...] = ()
    content_patterns: Tuple[CompiledPattern, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.path_patterns or self.content_patterns)


@dataclass(frozen=True)
class SkillRule:
    """
    One validated entry of the rule set.

    preToolTriggers and stopTriggers are kept verbatim in pre_tool_triggers /
    stop_triggers; unknown keys (type, validationRules, ...) land in extra.
    """
    name: str
    description: str = ""
    activation_strategy: ActivationStrategy = ActivationStrategy.NATIVE_ONLY
    priority: Priority = Priority.MEDIUM
    enforcement: Enforcement = Enforcement.SUGGEST
    cooldown_minutes: Optional[float] = None
    prompt_triggers: PromptTriggers = PromptTriggers()
    file_triggers: FileTriggers = FileTriggers()
    shadow_triggers: Optional[PromptTriggers] = None
    pre_tool_triggers: Optional[Any] = field(default=None, compare=False)
    stop_triggers: Optional[Any] = field(default=None, compare=False)
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def strategy(self) -> ActivationStrategy:
        """Strategy with the deprecated prompt_enhanced folded into native_only."""
        return self.activation_strategy.effective

    @property
    def has_triggers(self) -> bool:
        return bool(self.prompt_triggers or self.file_triggers or self.shadow_triggers)

    @property
    def trigger_count(self) -> int:
        count = 0
        for group in (self.prompt_triggers, self.shadow_triggers):
            if group:
                count += len(group.keywords) + len(group.intent_patterns)
        count += len(self.file_triggers.path_patterns)
        count += len(self.file_triggers.content_patterns)
        return count


_KNOWN_KEYS = {
    "description",
    "activationStrategy",
    "priority",
    "enforcement",
    "cooldownMinutes",
    "promptTriggers",
    "fileTriggers",
    "shadowTriggers",
    "preToolTriggers",
    "stopTriggers",
}


def _parse_enum(enum_cls, raw, default, key: str, skill: str):
    if raw is None:
        return default
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"{key} must be one of: {allowed} (got {raw!r})", skill=skill)


def _section(raw: dict, key: str, skill: str) -> Optional[dict]:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping", skill=skill)
    return value


def _patterns(section: Optional[dict], key: str, kind: PatternKind,
              skill: str) -> Tuple[CompiledPattern, ...]:
    if not section:
        return ()
    try:
        return tuple(compile_patterns(kind, section.get(key)))
    except PatternError as e:
        e.skill = skill
        e.args = (f"skill '{skill}': {key}: {e.args[0]}",)
        raise


def _parse_prompt_triggers(raw: dict, key: str, skill: str) -> Optional[PromptTriggers]:
    section = _section(raw, key, skill)
    if section is None:
        return None
    return PromptTriggers(
        keywords=_patterns(section, "keywords", PatternKind.KEYWORD, skill),
        intent_patterns=_patterns(section, "intentPatterns", PatternKind.INTENT, skill),
    )


def parse_skill_rule(name: str, raw: Dict[str, Any]) -> SkillRule:
    """
    Validate one raw rule mapping and build a SkillRule.

    Args:
        name: Skill name (the key in the skills mapping)
        raw: Raw rule mapping as loaded from the rule file

    Returns:
        Frozen SkillRule

    Raises:
        ConfigError: On wrong types or unknown enum values
        PatternError: On any trigger pattern that does not compile
    """
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"skill names must be non-empty strings (got {name!r})")
    if not isinstance(raw, dict):
        raise ConfigError("rule must be a mapping", skill=name)

    description = raw.get("description") or ""
    if not isinstance(description, str):
        raise ConfigError("description must be a string", skill=name)

    cooldown = raw.get("cooldownMinutes")
    if cooldown is not None:
        if isinstance(cooldown, bool) or not isinstance(cooldown, (int, float)) or cooldown <= 0:
            raise ConfigError(
                f"cooldownMinutes must be a positive number (got {cooldown!r})", skill=name
            )

    file_section = _section(raw, "fileTriggers", name)

    return SkillRule(
        name=name,
        description=description,
        activation_strategy=_parse_enum(
            ActivationStrategy, raw.get("activationStrategy"),
            ActivationStrategy.NATIVE_ONLY, "activationStrategy", name,
        ),
        priority=_parse_enum(Priority, raw.get("priority"), Priority.MEDIUM, "priority", name),
        enforcement=_parse_enum(
            Enforcement, raw.get("enforcement"), Enforcement.SUGGEST, "enforcement", name
        ),
        cooldown_minutes=cooldown,
        prompt_triggers=_parse_prompt_triggers(raw, "promptTriggers", name) or PromptTriggers(),
        file_triggers=FileTriggers(
            path_patterns=_patterns(file_section, "pathPatterns", PatternKind.PATH_GLOB, name),
            content_patterns=_patterns(
                file_section, "contentPatterns", PatternKind.CONTENT_REGEX, name
            ),
        ),
        shadow_triggers=_parse_prompt_triggers(raw, "shadowTriggers", name),
        pre_tool_triggers=raw.get("preToolTriggers"),
        stop_triggers=raw.get("stopTriggers"),
        extra={k: v for k, v in raw.items() if k not in _KNOWN_KEYS},
    )


def parse_skill_rules(raw_skills: Optional[Dict[str, Any]]) -> Dict[str, SkillRule]:
    """Validate a whole skills mapping, preserving its order."""
    if raw_skills is None:
        return {}
    if not isinstance(raw_skills, dict):
        raise ConfigError("skills must be a mapping of skill name to rule")
    return {name: parse_skill_rule(name, raw) for name, raw in raw_skills.items()}


def deprecated_strategy_skills(rules: Dict[str, SkillRule]) -> List[str]:
    """Names of skills that still declare a deprecated activation strategy."""
    return [name for name, rule in rules.items() if rule.activation_strategy.is_deprecated]
