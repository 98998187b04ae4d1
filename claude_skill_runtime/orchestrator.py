"""
Activation Orchestrator - one prompt-submit invocation, start to finish.

Stages run strictly in order, once each:

    START -> RULES_LOADED -> MATCHED -> COOLDOWN_FILTERED -> STRATEGY_FILTERED
          -> LIMITED -> GROUPED -> ACTIVATIONS_RECORDED -> OUTPUT_BUILT -> TERMINAL

Each stage returns a StageResult. The first failed stage ends the run in
SILENT_FAILURE, whose output is the hook's no-op response: a failure here
means "no skill this turn", never a blocked prompt.
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from claude_skill_runtime.config import (
    SkillConfig,
    load_skill_config,
    load_skill_content,
    resolve_project_dir,
)
from claude_skill_runtime.cooldown import filter_cooled_down
from claude_skill_runtime.debug_log import DebugLogger, configure_debug_log
from claude_skill_runtime.errors import HookInputError
from claude_skill_runtime.matcher import Match, RuleMatcher, ShadowMatch, limit_matches
from claude_skill_runtime.output import (
    ActivationResult,
    GuaranteedSkill,
    render_json_output,
    render_text_report,
    suggestion_from_match,
    suggestion_from_shadow,
)
from claude_skill_runtime.rules import ActivationStrategy, deprecated_strategy_skills
from claude_skill_runtime.session_state import SessionStore

ConfigLoader = Callable[[Path], SkillConfig]
ContentLoader = Callable[[Path, str], Optional[str]]


class Stage(str, Enum):
    START = "start"
    RULES_LOADED = "rules_loaded"
    MATCHED = "matched"
    COOLDOWN_FILTERED = "cooldown_filtered"
    STRATEGY_FILTERED = "strategy_filtered"
    LIMITED = "limited"
    GROUPED = "grouped"
    ACTIVATIONS_RECORDED = "activations_recorded"
    OUTPUT_BUILT = "output_built"
    TERMINAL = "terminal"
    SILENT_FAILURE = "silent_failure"


@dataclass
class StageResult:
    stage: Stage
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, stage: Stage, value: Any = None) -> "StageResult":
        return cls(stage, True, value)

    @classmethod
    def failure(cls, stage: Stage, error: BaseException) -> "StageResult":
        return cls(stage, False, error=error)


@dataclass
class PromptEvent:
    session_id: str
    prompt: str
    working_directory: Optional[str] = None

    @classmethod
    def from_hook_input(cls, data: Any) -> "PromptEvent":
        """
        Parse a UserPromptSubmit payload.

        Raises:
            HookInputError: If the payload is not an object or lacks session_id
        """
        if not isinstance(data, dict):
            raise HookInputError("hook input must be a JSON object")
        session_id = data.get("session_id")
        if not isinstance(session_id, str) or not session_id.strip():
            raise HookInputError("hook input is missing session_id")
        prompt = data.get("prompt") or data.get("user_prompt") or ""
        if not isinstance(prompt, str):
            raise HookInputError("prompt must be a string")
        working_directory = data.get("working_directory") or data.get("cwd")
        return cls(session_id=session_id, prompt=prompt, working_directory=working_directory)


@dataclass
class GroupedMatches:
    guaranteed: List[Match] = field(default_factory=list)
    suggestive: List[Match] = field(default_factory=list)
    native_only: List[Match] = field(default_factory=list)


def group_by_strategy(matches: List[Match]) -> GroupedMatches:
    grouped = GroupedMatches()
    for match in matches:
        strategy = match.rule.strategy
        if strategy is ActivationStrategy.GUARANTEED:
            grouped.guaranteed.append(match)
        elif strategy is ActivationStrategy.SUGGESTIVE:
            grouped.suggestive.append(match)
        else:
            grouped.native_only.append(match)
    return grouped


def drop_native_only(matches: List[Match]) -> List[Match]:
    """Remove matches that produce no output, before they can take a slot."""
    return [m for m in matches if m.rule.strategy.is_actionable]


def empty_output(output_format: str) -> str:
    return "{}" if output_format == "json" else ""


@dataclass
class PromptActivation:
    """
    Outcome of one run.

    Attributes:
        stage: TERMINAL or SILENT_FAILURE
        output: Exactly what the hook writes to stdout
        result: The activation result (None on failure)
        failed_stage: Stage that failed, for SILENT_FAILURE
        trace: Stages completed, in order
    """
    stage: Stage
    output: str
    result: Optional[ActivationResult] = None
    error: Optional[BaseException] = None
    failed_stage: Optional[Stage] = None
    trace: List[Stage] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.stage is Stage.TERMINAL


class ActivationOrchestrator:
    """
    Runs the activation pipeline for UserPromptSubmit events.

    Args:
        store: Session store for the project (passed in, never global)
        project_dir: Project root
        config_loader: Loads the validated rule set for a project
        content_loader: Loads a skill's content for guaranteed injection
        logger: Diagnostic logger (reconfigured from settings.debug once
            rules are loaded unless one is given)
        output_format: Force "json" or "text" instead of settings.outputFormat
    """

    def __init__(
        self,
        store: SessionStore,
        project_dir: Path,
        config_loader: ConfigLoader = load_skill_config,
        content_loader: ContentLoader = load_skill_content,
        logger: Optional[DebugLogger] = None,
        output_format: Optional[str] = None,
    ):
        self.store = store
        self.project_dir = Path(project_dir)
        self.config_loader = config_loader
        self.content_loader = content_loader
        self.logger = logger or DebugLogger()
        self._fixed_logger = logger is not None
        self.output_format = output_format

    def run(self, event: PromptEvent) -> PromptActivation:
        started = time.time()
        trace: List[Stage] = []
        state: Dict[str, Any] = {"event": event, "format": self.output_format or "json"}

        steps = [
            (Stage.START, self._start),
            (Stage.RULES_LOADED, self._load_rules),
            (Stage.MATCHED, self._match),
            (Stage.COOLDOWN_FILTERED, self._filter_cooldown),
            (Stage.STRATEGY_FILTERED, self._filter_strategy),
            (Stage.LIMITED, self._limit),
            (Stage.GROUPED, self._group),
            (Stage.ACTIVATIONS_RECORDED, self._record),
            (Stage.OUTPUT_BUILT, self._build_output),
        ]
        for stage, step in steps:
            outcome = self._advance(stage, step, state)
            if not outcome.ok:
                self.logger.error("activation pipeline failed", outcome.error,
                                  stage=stage.value, sessionId=event.session_id)
                return PromptActivation(
                    stage=Stage.SILENT_FAILURE,
                    output=empty_output(state["format"]),
                    error=outcome.error,
                    failed_stage=stage,
                    trace=trace,
                )
            trace.append(stage)

        trace.append(Stage.TERMINAL)
        self.logger.log("perf", "activation complete",
                        totalDurationMs=int((time.time() - started) * 1000))
        return PromptActivation(
            stage=Stage.TERMINAL,
            output=state["output"],
            result=state["result"],
            trace=trace,
        )

    @staticmethod
    def _advance(stage: Stage, step, state: Dict[str, Any]) -> StageResult:
        try:
            return StageResult.success(stage, step(state))
        except Exception as e:
            return StageResult.failure(stage, e)

    # -- stages ---------------------------------------------------------------

    def _start(self, state):
        event: PromptEvent = state["event"]
        self.store.init()
        # Must happen before matching: the scratch set is per prompt turn
        self.store.clear_current_prompt_skills(event.session_id)

    def _load_rules(self, state):
        config = self.config_loader(self.project_dir)
        state["config"] = config
        if self.output_format is None:
            state["format"] = config.settings.output_format
        if not self._fixed_logger:
            self.logger = configure_debug_log(self.project_dir, config.settings.debug)
        for name in deprecated_strategy_skills(config.skills):
            self.logger.log("activation", "deprecated activationStrategy treated as native_only",
                            skill=name, strategy=ActivationStrategy.PROMPT_ENHANCED.value)
        self.logger.log("activation", "hook started", sessionId=state["event"].session_id,
                        skillCount=len(config.skills), promptLength=len(state["event"].prompt))

    def _match(self, state):
        event: PromptEvent = state["event"]
        record = self.store.get_record(event.session_id)
        state["modified_files"] = record.modified_files
        state["active_domains"] = record.active_domains

        matcher = RuleMatcher(state["config"], self.project_dir, self.logger)
        state["matches"] = matcher.match_prompt(event.prompt, record.modified_files)
        state["shadow"] = matcher.match_shadow_triggers(event.prompt)
        self.logger.log("activation", "matching completed",
                        matchCount=len(state["matches"]), shadowCount=len(state["shadow"]))

    def _filter_cooldown(self, state):
        before = len(state["matches"])
        state["matches"] = filter_cooled_down(
            state["matches"],
            self.store,
            state["event"].session_id,
            state["config"].settings.default_cooldown_ms,
        )
        if before != len(state["matches"]):
            self.logger.log("activation", "cooldown filter applied",
                            before=before, after=len(state["matches"]))

    def _filter_strategy(self, state):
        state["matches"] = drop_native_only(state["matches"])

    def _limit(self, state):
        state["matches"] = limit_matches(
            state["matches"], state["config"].settings.max_suggestions
        )

    def _group(self, state):
        grouped = group_by_strategy(state["matches"])
        state["grouped"] = grouped
        self.logger.log("activation", "matches grouped by strategy",
                        guaranteed=len(grouped.guaranteed), suggestive=len(grouped.suggestive),
                        shadow=len(state["shadow"]))

    def _record(self, state):
        session_id = state["event"].session_id
        grouped: GroupedMatches = state["grouped"]

        guaranteed: List[GuaranteedSkill] = []
        for match in grouped.guaranteed:
            content = self.content_loader(self.project_dir, match.skill_name)
            if not content:
                self.logger.log("error", "skill content not found", skill=match.skill_name)
                continue
            guaranteed.append(GuaranteedSkill(match.skill_name, match.rule.description, content))
            self.store.record_skill_activation(session_id, match.skill_name)
            self.logger.log("activation", "guaranteed skill loaded",
                            skill=match.skill_name, contentLength=len(content))

        for match in grouped.suggestive:
            self.store.record_skill_activation(session_id, match.skill_name)
            self.logger.log("activation", "skill suggested", skill=match.skill_name,
                            score=match.score, priority=match.rule.priority.value)

        shadow: List[ShadowMatch] = state["shadow"]
        state["result"] = ActivationResult(
            guaranteed=guaranteed,
            suggested=[suggestion_from_match(m) for m in grouped.suggestive],
            shadow=[suggestion_from_shadow(m) for m in shadow],
            matches=list(state["matches"]),
            modified_files=list(state["modified_files"]),
            active_domains=list(state["active_domains"]),
        )

    def _build_output(self, state):
        result: ActivationResult = state["result"]
        if state["format"] == "text":
            state["output"] = render_text_report(result)
        else:
            state["output"] = json.dumps(render_json_output(result), ensure_ascii=False)


def run_prompt_activation(
    data: Any,
    store: Optional[SessionStore] = None,
    project_dir: Optional[Path] = None,
    **kwargs,
) -> PromptActivation:
    """
    Parse a hook payload and run the pipeline; never raises.

    Malformed input ends in SILENT_FAILURE at START like any other error.
    """
    output_format = kwargs.get("output_format") or "json"
    try:
        event = PromptEvent.from_hook_input(data)
        if project_dir is None:
            project_dir = resolve_project_dir(event.working_directory)
        if store is None:
            store = SessionStore(project_dir)
    except Exception as e:
        return PromptActivation(
            stage=Stage.SILENT_FAILURE,
            output=empty_output(output_format),
            error=e,
            failed_stage=Stage.START,
        )
    return ActivationOrchestrator(store, project_dir, **kwargs).run(event)
