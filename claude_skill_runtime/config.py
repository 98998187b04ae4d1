"""
Rule-file discovery and loading for the skill runtime.

Defaults are defined here. Projects override them in the `settings` block of
.claude/skills/skill-rules.yaml (or skill-rules.json).
"""

import copy
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from claude_skill_runtime.errors import ConfigError
from claude_skill_runtime.rules import SkillRule, parse_skill_rules

RULES_FILENAMES = ("skill-rules.yaml", "skill-rules.yml", "skill-rules.json")
SKILL_FILENAME = "SKILL.md"

# Default settings values
DEFAULTS: Dict[str, Any] = {
    # Upper bound on guaranteed + suggestive skills emitted per prompt
    "maxSuggestions": 3,
    "thresholds": {
        # Default cooldown for skills without cooldownMinutes
        "recentActivationMinutes": 5,
    },
    "scoring": {
        "keywordMatchScore": 10,
        "intentPatternScore": 20,
        "filePathMatchScore": 15,
        "fileContentMatchScore": 25,
    },
    # "json" for structured hook output, "text" for the banner report
    "outputFormat": "json",
    "debug": False,
}

_FRONTMATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)

_config_cache: Dict[str, Tuple[float, "SkillConfig"]] = {}


@dataclass(frozen=True)
class ScoringWeights:
    keyword: int = 10
    intent: int = 20
    file_path: int = 15
    file_content: int = 25


@dataclass(frozen=True)
class Settings:
    max_suggestions: int = 3
    recent_activation_minutes: float = 5
    scoring: ScoringWeights = ScoringWeights()
    output_format: str = "json"
    debug: bool = False

    @property
    def default_cooldown_ms(self) -> int:
        return int(self.recent_activation_minutes * 60 * 1000)


@dataclass
class SkillConfig:
    """
    A loaded, validated rule file.

    Attributes:
        skills: Ordered mapping of skill name to SkillRule (file order)
        settings: Settings merged over DEFAULTS
        source: File the config came from (None for an empty default config)
    """
    skills: Dict[str, SkillRule] = field(default_factory=dict)
    settings: Settings = Settings()
    version: str = "1.0"
    description: str = ""
    source: Optional[Path] = None


def resolve_project_dir(working_directory: Optional[str] = None) -> Path:
    """
    Resolve the project directory for a hook invocation.

    Priority: CLAUDE_PROJECT_DIR env var > working_directory from the hook
    payload > current working directory.
    """
    env_dir = os.environ.get("CLAUDE_PROJECT_DIR")
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    if working_directory:
        return Path(working_directory).expanduser().resolve()
    return Path.cwd().resolve()


def skills_dir(project_dir: Path) -> Path:
    return Path(project_dir) / ".claude" / "skills"


def cache_dir(project_dir: Path) -> Path:
    return Path(project_dir) / ".claude" / "cache"


def logs_dir(project_dir: Path) -> Path:
    return Path(project_dir) / ".claude" / "logs"


def find_rules_file(project_dir: Path) -> Optional[Path]:
    """Return the first rule file present, YAML preferred over JSON."""
    base = skills_dir(project_dir)
    for name in RULES_FILENAMES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _number(value, key: str, minimum: float = 0):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
        raise ConfigError(f"settings.{key} must be a number >= {minimum} (got {value!r})")
    return value


def _weight(scoring: Dict[str, Any], key: str):
    value = scoring.get(key, DEFAULTS["scoring"][key])
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"settings.scoring.{key} must be a number > 0 (got {value!r})")
    return value


def parse_scoring(scoring: Dict[str, Any]) -> ScoringWeights:
    """
    Validate scoring weights.

    Every weight must be positive so a fired trigger always counts, an
    intent hit must outweigh a keyword hit, and a content hit must outweigh
    a path hit.

    Raises:
        ConfigError: If a weight is not positive or the ordering is violated
    """
    weights = ScoringWeights(
        keyword=_weight(scoring, "keywordMatchScore"),
        intent=_weight(scoring, "intentPatternScore"),
        file_path=_weight(scoring, "filePathMatchScore"),
        file_content=_weight(scoring, "fileContentMatchScore"),
    )
    if weights.intent <= weights.keyword:
        raise ConfigError(
            f"settings.scoring.intentPatternScore ({weights.intent}) must be greater "
            f"than keywordMatchScore ({weights.keyword})"
        )
    if weights.file_content <= weights.file_path:
        raise ConfigError(
            f"settings.scoring.fileContentMatchScore ({weights.file_content}) must be "
            f"greater than filePathMatchScore ({weights.file_path})"
        )
    return weights


def parse_settings(raw: Optional[Dict[str, Any]]) -> Settings:
    """Merge raw settings over DEFAULTS and validate the result."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("settings must be a mapping")
    merged = _deep_merge(DEFAULTS, raw)
    scoring = merged.get("scoring") or {}
    thresholds = merged.get("thresholds") or {}
    if not isinstance(scoring, dict) or not isinstance(thresholds, dict):
        raise ConfigError("settings.scoring and settings.thresholds must be mappings")

    output_format = str(merged.get("outputFormat", "json")).lower()
    if output_format not in ("json", "text"):
        raise ConfigError(f"settings.outputFormat must be 'json' or 'text' (got {output_format!r})")

    debug = merged.get("debug", False)
    if not isinstance(debug, bool):
        raise ConfigError(f"settings.debug must be true or false (got {debug!r})")

    return Settings(
        max_suggestions=int(_number(merged["maxSuggestions"], "maxSuggestions")),
        recent_activation_minutes=_number(
            thresholds.get("recentActivationMinutes", 5),
            "thresholds.recentActivationMinutes",
        ),
        scoring=parse_scoring(scoring),
        output_format=output_format,
        debug=debug,
    )


def parse_skill_config(data: Any, source: Optional[Path] = None) -> SkillConfig:
    """
    Build a SkillConfig from an already-parsed document.

    Raises:
        ConfigError: If the document or any rule is invalid
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("rule file must contain a mapping",
                          source=str(source) if source else None)
    try:
        return SkillConfig(
            skills=parse_skill_rules(data.get("skills")),
            settings=parse_settings(data.get("settings")),
            version=str(data.get("version", "1.0")),
            description=str(data.get("description") or ""),
            source=source,
        )
    except ConfigError as e:
        if source and not e.source:
            e.source = str(source)
            e.args = (f"{source}: {e.args[0]}",)
        raise


def _read_rules_file(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read rule file: {e}", source=str(path)) from e
    try:
        if path.suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot parse rule file: {e}", source=str(path)) from e


def load_skill_config(project_dir: Path, use_cache: bool = True) -> SkillConfig:
    """
    Load and validate the project's rule file.

    A project without a rule file gets an empty config with default settings.
    Parsed configs are cached per file and reused while the mtime is unchanged.

    Raises:
        ConfigError: If the rule file exists but is unreadable or invalid
    """
    path = find_rules_file(project_dir)
    if path is None:
        return SkillConfig()

    mtime = path.stat().st_mtime
    key = str(path)
    cached = _config_cache.get(key)
    if use_cache and cached is not None and cached[0] == mtime:
        return cached[1]

    config = parse_skill_config(_read_rules_file(path), source=path)
    _config_cache[key] = (mtime, config)
    return config


def reload_config(project_dir: Path) -> SkillConfig:
    """Reload the rule file from disk (clears the cache entry)."""
    _config_cache.clear()
    return load_skill_config(project_dir, use_cache=False)


def parse_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """
    Split a SKILL.md document into (front matter, body).

    Malformed front matter is treated as part of the body.
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError:
        return {}, text
    if not isinstance(meta, dict):
        return {}, text
    return meta, text[match.end():]


def load_skill_content(project_dir: Path, skill_name: str) -> Optional[str]:
    """
    Load a skill's guidance content with front matter removed.

    Returns:
        The body text, or None if SKILL.md is missing, unreadable or empty
    """
    path = skills_dir(project_dir) / skill_name / SKILL_FILENAME
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    _, body = parse_frontmatter(text)
    body = body.strip()
    return body or None
