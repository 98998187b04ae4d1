"""Tests for SkillRule validation at the config boundary."""

import pytest

from claude_skill_runtime.errors import ConfigError, PatternError
from claude_skill_runtime.rules import (
    ActivationStrategy,
    Enforcement,
    Priority,
    deprecated_strategy_skills,
    parse_skill_rule,
    parse_skill_rules,
)


class TestParseSkillRule:
    def test_defaults(self):
        rule = parse_skill_rule("docs", {"description": "Docs helper"})
        assert rule.activation_strategy is ActivationStrategy.NATIVE_ONLY
        assert rule.priority is Priority.MEDIUM
        assert rule.enforcement is Enforcement.SUGGEST
        assert rule.cooldown_minutes is None
        assert rule.shadow_triggers is None
        assert not rule.has_triggers
        assert rule.trigger_count == 0

    def test_full_rule(self):
        rule = parse_skill_rule("backend-dev", {
            "description": "Backend guidelines",
            "type": "domain",
            "activationStrategy": "Suggestive",
            "priority": "high",
            "enforcement": "warn",
            "cooldownMinutes": 30,
            "promptTriggers": {
                "keywords": ["backend", "api"],
                "intentPatterns": [r"(create|add).*route"],
            },
            "fileTriggers": {
                "pathPatterns": ["src/api/**/*.ts"],
                "contentPatterns": [r"router\."],
            },
            "preToolTriggers": {"toolName": "Bash"},
        })
        assert rule.activation_strategy is ActivationStrategy.SUGGESTIVE
        assert rule.priority is Priority.HIGH
        assert rule.enforcement is Enforcement.WARN
        assert rule.cooldown_minutes == 30
        assert [k.source for k in rule.prompt_triggers.keywords] == ["backend", "api"]
        assert len(rule.file_triggers.path_patterns) == 1
        assert rule.trigger_count == 5
        assert rule.pre_tool_triggers == {"toolName": "Bash"}
        assert rule.extra == {"type": "domain"}

    def test_prompt_enhanced_behaves_as_native_only(self):
        rule = parse_skill_rule("legacy", {"activationStrategy": "prompt_enhanced"})
        assert rule.activation_strategy is ActivationStrategy.PROMPT_ENHANCED
        assert rule.strategy is ActivationStrategy.NATIVE_ONLY
        assert not rule.strategy.is_actionable

    @pytest.mark.parametrize("key,value", [
        ("activationStrategy", "always"),
        ("priority", "urgent"),
        ("enforcement", "deny"),
    ])
    def test_unknown_enum_values_rejected(self, key, value):
        with pytest.raises(ConfigError) as exc_info:
            parse_skill_rule("bad", {key: value})
        assert exc_info.value.skill == "bad"

    @pytest.mark.parametrize("cooldown", [0, -5, "10", True])
    def test_invalid_cooldown_rejected(self, cooldown):
        with pytest.raises(ConfigError):
            parse_skill_rule("bad", {"cooldownMinutes": cooldown})

    def test_invalid_pattern_names_skill(self):
        with pytest.raises(PatternError) as exc_info:
            parse_skill_rule("bad", {"promptTriggers": {"intentPatterns": ["(oops"]}})
        assert exc_info.value.skill == "bad"
        assert "intentPatterns" in str(exc_info.value)

    def test_trigger_section_must_be_mapping(self):
        with pytest.raises(ConfigError):
            parse_skill_rule("bad", {"promptTriggers": ["terraform"]})

    def test_rule_must_be_mapping(self):
        with pytest.raises(ConfigError):
            parse_skill_rule("bad", "terraform")

    def test_shadow_triggers_parsed(self):
        rule = parse_skill_rule("refactor", {"shadowTriggers": {"keywords": ["refactor"]}})
        assert rule.shadow_triggers
        assert rule.has_triggers
        assert not rule.prompt_triggers


class TestParseSkillRules:
    def test_order_preserved(self):
        rules = parse_skill_rules({"c": {}, "a": {}, "b": {}})
        assert list(rules) == ["c", "a", "b"]

    def test_none_is_empty(self):
        assert parse_skill_rules(None) == {}

    def test_list_rejected(self):
        with pytest.raises(ConfigError):
            parse_skill_rules([{"name": "a"}])

    def test_deprecated_strategy_skills(self):
        rules = parse_skill_rules({
            "old": {"activationStrategy": "prompt_enhanced"},
            "new": {"activationStrategy": "suggestive"},
        })
        assert deprecated_strategy_skills(rules) == ["old"]


class TestPriority:
    def test_rank_order(self):
        ranks = [p.rank for p in (Priority.CRITICAL, Priority.HIGH, Priority.MEDIUM, Priority.LOW)]
        assert ranks == sorted(ranks)
