"""
Hook entry points.

Each reads one JSON object from stdin, does its work, and returns exit
status 0 no matter what happened: a broken skill setup must never block the
user's prompt or tool call. Errors go to the diagnostic log and one line on
stderr; stdout only ever carries the hook's normal (possibly empty) output.
"""

import json
import sys
from typing import Any, Optional, TextIO

from claude_skill_runtime.config import load_skill_config, resolve_project_dir
from claude_skill_runtime.debug_log import DebugLogger, configure_debug_log
from claude_skill_runtime.errors import ConfigError, HookInputError
from claude_skill_runtime.orchestrator import empty_output, run_prompt_activation
from claude_skill_runtime.session_state import SessionStore
from claude_skill_runtime.tracker import start_session, track_tool_use


def read_hook_input(stream: Optional[TextIO] = None) -> Any:
    """
    Parse the hook payload from stdin.

    Raises:
        HookInputError: If stdin is empty or not valid JSON
    """
    stream = stream or sys.stdin
    raw = stream.read()
    if not raw.strip():
        raise HookInputError("empty hook input")
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, ValueError) as e:
        raise HookInputError(f"hook input is not valid JSON: {e}") from e


def handle_hook_error(
    error: BaseException, logger: Optional[DebugLogger], hook_name: str
) -> None:
    """Record a swallowed hook error without touching stdout."""
    if logger is not None:
        logger.error(f"{hook_name} failed", error, hookName=hook_name)
    print(f"[{hook_name}] {type(error).__name__}: {error}", file=sys.stderr)


def _working_directory(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        return data.get("working_directory") or data.get("cwd")
    return None


def _tracking_logger(project_dir) -> DebugLogger:
    try:
        debug = load_skill_config(project_dir).settings.debug
    except ConfigError:
        debug = False
    return configure_debug_log(project_dir, debug)


def prompt_submit_main(output_format: Optional[str] = None) -> int:
    """UserPromptSubmit: print skill context for the prompt."""
    fallback = empty_output(output_format or "json")
    try:
        data = read_hook_input()
    except HookInputError as e:
        handle_hook_error(e, None, "SkillActivation")
        if fallback:
            print(fallback)
        return 0

    outcome = run_prompt_activation(data, output_format=output_format)
    if not outcome.succeeded and outcome.error is not None:
        handle_hook_error(outcome.error, None, "SkillActivation")
    if outcome.output:
        print(outcome.output)
    return 0


def post_tool_use_main() -> int:
    """PostToolUse: track modified files. Prints nothing."""
    logger = None
    try:
        data = read_hook_input()
        project_dir = resolve_project_dir(_working_directory(data))
        logger = _tracking_logger(project_dir)
        track_tool_use(data, SessionStore(project_dir), logger)
    except Exception as e:
        handle_hook_error(e, logger, "PostToolUse")
    return 0


def session_start_main() -> int:
    """SessionStart: seed session state and print a short summary."""
    logger = None
    try:
        data = read_hook_input()
        project_dir = resolve_project_dir(_working_directory(data))
        config = load_skill_config(project_dir)
        logger = configure_debug_log(project_dir, config.settings.debug)
        summary = start_session(data, SessionStore(project_dir), config, logger)
        print(summary.render())
    except Exception as e:
        handle_hook_error(e, logger, "SessionStart")
    return 0
