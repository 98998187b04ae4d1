"""
Session tracking outside of prompt submission.

- PostToolUse: record files touched by editing tools so file triggers can
  fire on later prompts, and run periodic cleanup of the session store.
- SessionStart: seed the session from git's view of the working tree and
  write a skill metadata index next to the session store.
"""

import json
import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from claude_skill_runtime.config import SkillConfig, cache_dir
from claude_skill_runtime.debug_log import DebugLogger
from claude_skill_runtime.errors import HookInputError
from claude_skill_runtime.rules import ActivationStrategy
from claude_skill_runtime.session_state import SessionStore

FILE_MODIFYING_TOOLS = ("Edit", "Write", "MultiEdit", "NotebookEdit")
CLEANUP_EVERY_TOOL_USES = 50
STALE_ACTIVATION_MS = 60 * 60 * 1000
GIT_TIMEOUT_SECONDS = 5
MAX_UNTRACKED_FILES = 100
FILE_STATE_FILENAME = "file_state.json"


def _require_session_id(data: Any) -> str:
    if not isinstance(data, dict):
        raise HookInputError("hook input must be a JSON object")
    session_id = data.get("session_id")
    if not isinstance(session_id, str) or not session_id.strip():
        raise HookInputError("hook input is missing session_id")
    return session_id


def extract_file_paths(tool_name: str, tool_input: Any) -> List[str]:
    """File paths touched by a file-modifying tool call (empty for others)."""
    if tool_name not in FILE_MODIFYING_TOOLS or not isinstance(tool_input, dict):
        return []
    paths: List[str] = []
    if tool_name == "MultiEdit":
        edits = tool_input.get("edits") or []
        for edit in edits:
            if isinstance(edit, dict) and isinstance(edit.get("file_path"), str):
                paths.append(edit["file_path"])
    for key in ("file_path", "notebook_path"):
        value = tool_input.get(key)
        if isinstance(value, str) and value and value not in paths:
            paths.append(value)
    return paths


@dataclass
class ToolUseOutcome:
    tracked_files: List[str] = field(default_factory=list)
    tool_use_count: int = 0
    cleaned_sessions: List[str] = field(default_factory=list)
    pruned_activations: int = 0


def track_tool_use(
    data: Any, store: SessionStore, logger: Optional[DebugLogger] = None
) -> ToolUseOutcome:
    """
    Record one PostToolUse event.

    Non-modifying tools are ignored. Every CLEANUP_EVERY_TOOL_USES tracked
    uses, old sessions are removed and stale activation timestamps pruned.

    Raises:
        HookInputError: If the payload has no session_id
    """
    logger = logger or DebugLogger()
    session_id = _require_session_id(data)
    tool_name = data.get("tool_name") or ""
    outcome = ToolUseOutcome()

    file_paths = extract_file_paths(tool_name, data.get("tool_input"))
    if not file_paths:
        logger.log("io", "tool skipped (non-modifying)", toolName=tool_name)
        return outcome

    store.init()
    for file_path in file_paths:
        normalized = store.add_modified_file(session_id, file_path)
        outcome.tracked_files.append(normalized)
        logger.log("state", "file tracked", originalPath=file_path, normalizedPath=normalized)

    outcome.tool_use_count = store.increment_tool_use_count(session_id)
    if outcome.tool_use_count % CLEANUP_EVERY_TOOL_USES == 0:
        outcome.cleaned_sessions = store.cleanup_old_sessions()
        outcome.pruned_activations = store.prune_stale_activations(
            session_id, STALE_ACTIVATION_MS
        )
        logger.log("state", "cleanup triggered", toolUseCount=outcome.tool_use_count,
                   removedSessions=len(outcome.cleaned_sessions),
                   prunedActivations=outcome.pruned_activations)
    return outcome


def _git_lines(project_dir: Path, *args: str) -> List[str]:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=project_dir,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.SubprocessError):
        return []
    if result.returncode != 0:
        return []
    return [line for line in result.stdout.splitlines() if line.strip()]


def build_skill_index(config: SkillConfig) -> Dict[str, Dict[str, Any]]:
    index = {}
    for name, rule in config.skills.items():
        index[name] = {
            "name": name,
            "description": rule.description,
            "activationStrategy": rule.activation_strategy.value,
            "hasHooks": rule.pre_tool_triggers is not None or rule.stop_triggers is not None,
            "triggerCount": rule.trigger_count,
        }
    return index


def _write_json_atomic(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, path)
    except OSError:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


@dataclass
class SessionStartSummary:
    skill_count: int
    guaranteed_count: int
    modified_files: List[str]
    staged_files: List[str]
    untracked_files: List[str]

    def render(self) -> str:
        lines = ["", "🚀 Skill system initialized", f"   {self.skill_count} skills loaded"]
        tracked = len(set(self.modified_files) | set(self.staged_files))
        if tracked:
            lines.append(f"   {tracked} modified files tracked")
        if self.guaranteed_count:
            lines.append(f"   {self.guaranteed_count} guaranteed skills active")
        lines.append("")
        return "\n".join(lines)


def start_session(
    data: Any,
    store: SessionStore,
    config: SkillConfig,
    logger: Optional[DebugLogger] = None,
) -> SessionStartSummary:
    """
    Seed a new session from git and write the skill index snapshot.

    Raises:
        HookInputError: If the payload has no session_id
    """
    logger = logger or DebugLogger()
    session_id = _require_session_id(data)
    project_dir = store.project_dir

    modified = _git_lines(project_dir, "diff", "--name-only", "--relative")
    staged = _git_lines(project_dir, "diff", "--cached", "--name-only", "--relative")
    untracked = _git_lines(project_dir, "ls-files", "--others", "--exclude-standard")
    untracked = untracked[:MAX_UNTRACKED_FILES]
    logger.log("state", "workspace scan complete", modifiedCount=len(modified),
               stagedCount=len(staged), untrackedCount=len(untracked))

    store.init()
    for file_path in dict.fromkeys(modified + staged):
        store.add_modified_file(session_id, file_path)

    index = build_skill_index(config)
    _write_json_atomic(cache_dir(project_dir) / FILE_STATE_FILENAME, {
        "version": "1.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sessionId": session_id,
        "modifiedFiles": modified,
        "stagedFiles": staged,
        "untrackedFiles": untracked,
        "skillIndex": index,
    })

    guaranteed = sum(
        1 for rule in config.skills.values()
        if rule.activation_strategy is ActivationStrategy.GUARANTEED
    )
    return SessionStartSummary(
        skill_count=len(index),
        guaranteed_count=guaranteed,
        modified_files=modified,
        staged_files=staged,
        untracked_files=untracked,
    )
