"""Tests for PostToolUse tracking and SessionStart seeding."""

import json
import shutil
import subprocess

import pytest

from claude_skill_runtime.config import load_skill_config
from claude_skill_runtime.errors import HookInputError
from claude_skill_runtime.session_state import SessionStore
from claude_skill_runtime.tracker import (
    CLEANUP_EVERY_TOOL_USES,
    FILE_STATE_FILENAME,
    build_skill_index,
    extract_file_paths,
    start_session,
    track_tool_use,
)

SESSION = "tracker-session"


@pytest.fixture
def store(project_dir, clock):
    return SessionStore(project_dir, clock=clock)


def _event(tool_name, tool_input, session_id=SESSION):
    return {
        "session_id": session_id,
        "hook_event_name": "PostToolUse",
        "tool_name": tool_name,
        "tool_input": tool_input,
    }


class TestExtractFilePaths:
    def test_edit_and_write(self):
        assert extract_file_paths("Edit", {"file_path": "src/a.py"}) == ["src/a.py"]
        assert extract_file_paths("Write", {"file_path": "b.md", "content": "x"}) == ["b.md"]

    def test_multi_edit(self):
        tool_input = {
            "file_path": "src/a.py",
            "edits": [{"file_path": "src/b.py"}, {"old_string": "x"}, {"file_path": "src/a.py"}],
        }
        assert extract_file_paths("MultiEdit", tool_input) == ["src/b.py", "src/a.py"]

    def test_notebook_edit(self):
        assert extract_file_paths("NotebookEdit", {"notebook_path": "nb.ipynb"}) == ["nb.ipynb"]

    @pytest.mark.parametrize("tool_name,tool_input", [
        ("Read", {"file_path": "src/a.py"}),
        ("Bash", {"command": "rm -rf build"}),
        ("Edit", None),
        ("Edit", {"file_path": ""}),
    ])
    def test_ignored(self, tool_name, tool_input):
        assert extract_file_paths(tool_name, tool_input) == []


class TestTrackToolUse:
    def test_tracks_file_and_counts(self, store, project_dir):
        outcome = track_tool_use(
            _event("Edit", {"file_path": str(project_dir / "src" / "api" / "users.ts")}), store
        )
        assert outcome.tracked_files == ["src/api/users.ts"]
        assert outcome.tool_use_count == 1
        assert store.get_modified_files(SESSION) == ["src/api/users.ts"]
        assert store.get_active_domains(SESSION) == ["typescript", "backend"]

    def test_non_modifying_tool_is_ignored(self, store):
        outcome = track_tool_use(_event("Read", {"file_path": "a.py"}), store)
        assert outcome.tracked_files == []
        assert not store.path.exists()

    def test_missing_session_id(self, store):
        with pytest.raises(HookInputError):
            track_tool_use({"tool_name": "Edit", "tool_input": {"file_path": "a.py"}}, store)

    def test_periodic_cleanup(self, store, clock):
        store.add_modified_file("stale-session", "old.py")
        store.record_skill_activation(SESSION, "terraform")
        clock.advance(minutes=30)
        store.clear_current_prompt_skills(SESSION)
        store.record_skill_activation(SESSION, "terraform")
        clock.advance(minutes=24 * 60 + 1)

        outcome = None
        for i in range(CLEANUP_EVERY_TOOL_USES):
            outcome = track_tool_use(_event("Write", {"file_path": f"f{i}.py"}), store)
            if i < CLEANUP_EVERY_TOOL_USES - 1:
                assert outcome.cleaned_sessions == []

        assert outcome.tool_use_count == CLEANUP_EVERY_TOOL_USES
        assert outcome.cleaned_sessions == ["stale-session"]
        assert outcome.pruned_activations == 1
        assert len(store.get_record(SESSION).activated_skills["terraform"]) == 1


def _git(project_dir, *args):
    subprocess.run(
        ["git", "-c", "user.email=test@example.com", "-c", "user.name=Test", *args],
        cwd=project_dir, check=True, capture_output=True,
    )


class TestStartSession:
    @pytest.fixture
    def config(self, project_dir, write_rules):
        write_rules({
            "terraform": {
                "description": "Terraform workflow",
                "activationStrategy": "guaranteed",
                "promptTriggers": {"keywords": ["terraform"]},
            },
            "docs": {
                "description": "Docs",
                "stopTriggers": {"keywords": ["done"]},
            },
        })
        return load_skill_config(project_dir)

    def test_outside_git_repo(self, store, config, project_dir):
        summary = start_session({"session_id": SESSION}, store, config)
        assert summary.skill_count == 2
        assert summary.guaranteed_count == 1
        assert summary.modified_files == []
        assert store.get_modified_files(SESSION) == []

        state = json.loads((project_dir / ".claude" / "cache" / FILE_STATE_FILENAME).read_text())
        assert state["sessionId"] == SESSION
        assert set(state["skillIndex"]) == {"terraform", "docs"}

    @pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
    def test_seeds_from_git(self, store, config, project_dir):
        _git(project_dir, "init", "-q")
        (project_dir / "tracked.py").write_text("x = 1\n")
        _git(project_dir, "add", "tracked.py")
        _git(project_dir, "commit", "-q", "-m", "init")

        (project_dir / "tracked.py").write_text("x = 2\n")
        (project_dir / "staged.ts").write_text("export {}\n")
        _git(project_dir, "add", "staged.ts")
        (project_dir / "untracked.md").write_text("notes\n")

        summary = start_session({"session_id": SESSION}, store, config)

        assert summary.modified_files == ["tracked.py"]
        assert summary.staged_files == ["staged.ts"]
        assert "untracked.md" in summary.untracked_files
        assert store.get_modified_files(SESSION) == ["tracked.py", "staged.ts"]
        assert "2 modified files tracked" in summary.render()

    @pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
    def test_project_in_repo_subdirectory(self, store, config, project_dir):
        repo = project_dir.parent
        _git(repo, "init", "-q")
        (project_dir / "src").mkdir()
        (project_dir / "src" / "x.py").write_text("x = 1\n")
        (repo / "outside.py").write_text("y = 1\n")
        _git(repo, "add", "project/src/x.py", "outside.py")
        _git(repo, "commit", "-q", "-m", "init")

        (project_dir / "src" / "x.py").write_text("x = 2\n")
        (repo / "outside.py").write_text("y = 2\n")
        (project_dir / "src" / "new.ts").write_text("export {}\n")
        _git(repo, "add", "project/src/new.ts")

        summary = start_session({"session_id": SESSION}, store, config)

        assert summary.modified_files == ["src/x.py"]
        assert summary.staged_files == ["src/new.ts"]
        assert store.get_modified_files(SESSION) == ["src/x.py", "src/new.ts"]

    def test_render(self, store, config):
        text = start_session({"session_id": SESSION}, store, config).render()
        assert "🚀 Skill system initialized" in text
        assert "2 skills loaded" in text
        assert "1 guaranteed skills active" in text

    def test_missing_session_id(self, store, config):
        with pytest.raises(HookInputError):
            start_session({}, store, config)


class TestSkillIndex:
    def test_index_fields(self, project_dir, write_rules):
        write_rules({
            "a": {"description": "A", "activationStrategy": "suggestive",
                  "promptTriggers": {"keywords": ["x", "y"]},
                  "preToolTriggers": {"toolName": "Bash"}},
            "b": {},
        })
        index = build_skill_index(load_skill_config(project_dir))
        assert index["a"] == {
            "name": "a",
            "description": "A",
            "activationStrategy": "suggestive",
            "hasHooks": True,
            "triggerCount": 2,
        }
        assert index["b"]["activationStrategy"] == "native_only"
        assert index["b"]["hasHooks"] is False
