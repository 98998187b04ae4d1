"""Shared fixtures for skill runtime tests."""

from pathlib import Path

import pytest
import yaml

from claude_skill_runtime import config as config_module


class FakeClock:
    """Settable epoch-ms clock for SessionStore."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, minutes: float = 0, ms: int = 0) -> int:
        self.now += int(minutes * 60 * 1000) + ms
        return self.now


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep the developer's environment out of project resolution and logging."""
    monkeypatch.delenv("CLAUDE_PROJECT_DIR", raising=False)
    monkeypatch.delenv("CLAUDE_SKILLS_DEBUG", raising=False)
    config_module._config_cache.clear()
    yield
    config_module._config_cache.clear()


@pytest.fixture
def project_dir(tmp_path) -> Path:
    project = tmp_path / "project"
    (project / ".claude" / "skills").mkdir(parents=True)
    return project


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def write_rules(project_dir):
    """Write skill-rules.yaml; returns a function(skills, settings=None)."""

    def _write(skills, settings=None):
        doc = {"version": "1.0", "skills": skills}
        if settings is not None:
            doc["settings"] = settings
        path = project_dir / ".claude" / "skills" / "skill-rules.yaml"
        path.write_text(yaml.safe_dump(doc, sort_keys=False))
        config_module._config_cache.clear()
        return path

    return _write


@pytest.fixture
def write_skill(project_dir):
    """Write .claude/skills/<name>/SKILL.md; returns its path."""

    def _write(name, body, description=None):
        skill_dir = project_dir / ".claude" / "skills" / name
        skill_dir.mkdir(parents=True, exist_ok=True)
        text = ""
        if description is not None:
            text += f"---\nname: {name}\ndescription: {description}\n---\n"
        text += body
        path = skill_dir / "SKILL.md"
        path.write_text(text)
        return path

    return _write
