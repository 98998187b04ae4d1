"""
Rule matching: score every skill rule against a prompt and the session's
modified files.

Scoring (weights come from settings.scoring):
    keyword hit          +keyword       per matching keyword
    intent pattern hit   +intent        per matching pattern
    path pattern hit     +file_path     per (file, pattern) pair
    content pattern hit  +file_content  per (file, pattern) pair

Nothing short-circuits: every trigger that fires adds to the score.

Ordering: score descending, then priority (critical > high > medium > low),
then rule-set order. limit_matches() only truncates.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from claude_skill_runtime.config import ScoringWeights, Settings, SkillConfig
from claude_skill_runtime.debug_log import DebugLogger
from claude_skill_runtime.rules import FileTriggers, PromptTriggers, SkillRule

MAX_CONTENT_BYTES = 1024 * 1024


@dataclass
class Match:
    """
    Result of evaluating one rule against one event.

    Attributes:
        score: Sum of all trigger contributions (> 0 for every returned match)
        prompt_match: True if any prompt trigger contributed
        file_match: True if any file trigger contributed
        reason: The triggers that fired, for display
    """
    skill_name: str
    rule: SkillRule
    score: float
    prompt_match: bool
    file_match: bool
    reason: str = ""


@dataclass
class ShadowMatch:
    skill_name: str
    rule: SkillRule
    reason: str
    score: float


class FileContentReader:
    """Reads modified files once per matching pass; failures read as None."""

    def __init__(self, project_dir: Optional[Path]):
        self.project_dir = Path(project_dir) if project_dir else None
        self._cache: Dict[str, Optional[str]] = {}

    def read(self, file_path: str) -> Optional[str]:
        if file_path not in self._cache:
            self._cache[file_path] = self._load(file_path)
        return self._cache[file_path]

    def _load(self, file_path: str) -> Optional[str]:
        path = Path(file_path)
        if not path.is_absolute():
            if self.project_dir is None:
                return None
            path = self.project_dir / path
        try:
            if not path.is_file() or path.stat().st_size > MAX_CONTENT_BYTES:
                return None
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None


def score_prompt_triggers(
    triggers: Optional[PromptTriggers], prompt: str, weights: ScoringWeights
) -> Tuple[float, List[str]]:
    """Score keyword and intent-pattern hits; returns (score, fired triggers)."""
    score = 0
    hits: List[str] = []
    if not triggers or not prompt:
        return score, hits
    for keyword in triggers.keywords:
        if keyword.matches(prompt):
            score += weights.keyword
            hits.append(f'keyword "{keyword.source}"')
    for pattern in triggers.intent_patterns:
        if pattern.matches(prompt):
            score += weights.intent
            hits.append(f'intent "{pattern.source}"')
    return score, hits


def score_file_triggers(
    triggers: FileTriggers,
    modified_files: Iterable[str],
    weights: ScoringWeights,
    reader: FileContentReader,
) -> Tuple[float, List[str]]:
    score = 0
    hits: List[str] = []
    if not triggers:
        return score, hits
    for file_path in modified_files:
        for pattern in triggers.path_patterns:
            if pattern.matches(file_path):
                score += weights.file_path
                hits.append(f'path "{pattern.source}" ({file_path})')
        if not triggers.content_patterns:
            continue
        content = reader.read(file_path)
        if not content:
            continue
        for pattern in triggers.content_patterns:
            if pattern.matches(content):
                score += weights.file_content
                hits.append(f'content "{pattern.source}" ({file_path})')
    return score, hits


def sort_matches(matches):
    """Score descending, then priority rank; stable for everything else."""
    return sorted(matches, key=lambda m: (-m.score, m.rule.priority.rank))


def limit_matches(matches: List[Match], max_count: int) -> List[Match]:
    """First max_count matches, order untouched (negative counts as 0)."""
    return list(matches[:max(0, int(max_count))])


class RuleMatcher:
    """
    Matches a loaded rule set against prompts and session files.

    Args:
        config: Validated SkillConfig (rules + scoring weights)
        project_dir: Root used to resolve relative file paths for content
            patterns (None disables content matching for relative paths)
        logger: Optional DebugLogger for per-rule diagnostics
    """

    def __init__(
        self,
        config: SkillConfig,
        project_dir: Optional[Path] = None,
        logger: Optional[DebugLogger] = None,
    ):
        self.rules: Dict[str, SkillRule] = config.skills
        self.weights = config.settings.scoring
        self.project_dir = Path(project_dir) if project_dir else None
        self.logger = logger or DebugLogger()

    def match_prompt(self, prompt: str, modified_files: Optional[List[str]] = None) -> List[Match]:
        """
        Score every rule; return the ones with score > 0, sorted.

        native_only rules are included so callers can inspect them.
        """
        prompt = prompt or ""
        files = list(modified_files or [])
        reader = FileContentReader(self.project_dir)
        matches: List[Match] = []

        for name, rule in self.rules.items():
            prompt_score, prompt_hits = score_prompt_triggers(
                rule.prompt_triggers, prompt, self.weights
            )
            file_score, file_hits = score_file_triggers(
                rule.file_triggers, files, self.weights, reader
            )
            score = prompt_score + file_score
            if score <= 0:
                continue
            matches.append(Match(
                skill_name=name,
                rule=rule,
                score=score,
                prompt_match=prompt_score > 0,
                file_match=file_score > 0,
                reason="; ".join(prompt_hits + file_hits),
            ))
            self.logger.log("activation", "rule matched", skill=name, score=score,
                            promptScore=prompt_score, fileScore=file_score)

        return sort_matches(matches)

    def match_shadow_triggers(self, prompt: str) -> List[ShadowMatch]:
        """
        Suggestion-only matches for skills that declare shadowTriggers.

        A skill whose own strategy already acts on this prompt (guaranteed or
        suggestive with prompt triggers firing) gets no shadow match.
        """
        prompt = prompt or ""
        shadow: List[ShadowMatch] = []

        for name, rule in self.rules.items():
            if not rule.shadow_triggers:
                continue
            if rule.strategy.is_actionable:
                primary_score, _ = score_prompt_triggers(
                    rule.prompt_triggers, prompt, self.weights
                )
                if primary_score > 0:
                    continue
            score, hits = score_prompt_triggers(rule.shadow_triggers, prompt, self.weights)
            if score <= 0:
                continue
            shadow.append(ShadowMatch(
                skill_name=name,
                rule=rule,
                reason="matched " + ", ".join(hits),
                score=score,
            ))

        return sort_matches(shadow)

    def limit_matches(self, matches: List[Match], max_count: int) -> List[Match]:
        return limit_matches(matches, max_count)


def _matcher_for(rules: Dict[str, SkillRule], project_dir: Optional[Path],
                 scoring: Optional[ScoringWeights]) -> RuleMatcher:
    settings = Settings(scoring=scoring or ScoringWeights())
    return RuleMatcher(SkillConfig(skills=rules, settings=settings), project_dir)


def match_prompt(
    rules: Dict[str, SkillRule],
    prompt: str,
    modified_files: Optional[List[str]] = None,
    project_dir: Optional[Path] = None,
    scoring: Optional[ScoringWeights] = None,
) -> List[Match]:
    return _matcher_for(rules, project_dir, scoring).match_prompt(prompt, modified_files)


def match_shadow_triggers(
    rules: Dict[str, SkillRule],
    prompt: str,
    scoring: Optional[ScoringWeights] = None,
) -> List[ShadowMatch]:
    return _matcher_for(rules, None, scoring).match_shadow_triggers(prompt)
