"""
Session State Store - durable per-project record of skill activity.

Every hook callback is a fresh process, so whatever one invocation learns
(which skills fired, which files were edited) must be on disk before it
exits for the next invocation to see it.

Layout: <project>/.claude/cache/skill-sessions.json

    {
      "version": 1,
      "sessions": {
        "<session_id>": {
          "activatedSkills": {"skill": [epoch_ms, ...]},
          "modifiedFiles": ["src/api/server.ts"],
          "activeDomains": ["typescript", "backend"],
          "currentPromptSkills": ["skill"],
          "toolUseCount": 3,
          "createdAt": epoch_ms,
          "updatedAt": epoch_ms
        }
      }
    }

Concurrency:
- Mutations are read-modify-write under an exclusive fcntl lock on a sidecar
  .lock file, so writers for different sessions never lose each other's
  updates.
- Commits write a temp file in the same directory and os.replace() it over
  the store, so readers (which do not lock) never see a torn document.
- Two callbacks for the same session that act on stale snapshots are
  last-writer-wins; the worst outcome is a missed cooldown record.

Intentional pruning:
- Each skill keeps at most MAX_TIMESTAMPS_PER_SKILL timestamps.
- prune_stale_activations() / cleanup_old_sessions() drop old data on demand
  (the post-tool-use tracker calls them every 50 tool uses).
"""

import fcntl
import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterator, List, Optional

from claude_skill_runtime.config import cache_dir
from claude_skill_runtime.errors import StateError

logger = logging.getLogger(__name__)

STORE_FILENAME = "skill-sessions.json"
STORE_VERSION = 1
MAX_TIMESTAMPS_PER_SKILL = 20
DEFAULT_SESSION_MAX_AGE_MS = 24 * 60 * 60 * 1000

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


# =============================================================================
# DOMAIN INFERENCE
# =============================================================================

_EXTENSION_DOMAINS = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".mts": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".rb": "ruby",
    ".tf": "infrastructure",
    ".tfvars": "infrastructure",
    ".sql": "database",
    ".css": "frontend",
    ".scss": "frontend",
    ".vue": "frontend",
    ".svelte": "frontend",
    ".md": "documentation",
    ".mdx": "documentation",
}

_DIRECTORY_DOMAINS = {
    "api": "backend",
    "routes": "backend",
    "controllers": "backend",
    "services": "backend",
    "server": "backend",
    "components": "frontend",
    "pages": "frontend",
    "app": "frontend",
    "hooks": "frontend",
    "tests": "testing",
    "test": "testing",
    "__tests__": "testing",
    "spec": "testing",
    "migrations": "database",
    "prisma": "database",
    "db": "database",
    "terraform": "infrastructure",
    "infra": "infrastructure",
    ".github": "ci",
    "docs": "documentation",
}

_TEST_MARKERS = (".test.", ".spec.")


def infer_domains(path: str) -> List[str]:
    """Domains suggested by one project-relative path, in discovery order."""
    pure = PurePosixPath(path)
    found: List[str] = []

    def add(domain: str) -> None:
        if domain not in found:
            found.append(domain)

    ext_domain = _EXTENSION_DOMAINS.get(pure.suffix.lower())
    if ext_domain:
        add(ext_domain)
    for part in pure.parts[:-1]:
        dir_domain = _DIRECTORY_DOMAINS.get(part.lower())
        if dir_domain:
            add(dir_domain)
    name = pure.name.lower()
    stem = pure.stem.lower()
    if (any(marker in name for marker in _TEST_MARKERS)
            or name.startswith("test_") or stem.endswith("_test")):
        add("testing")
    if name == "dockerfile" or name.startswith("docker-compose"):
        add("infrastructure")
    return found


def derive_active_domains(files: List[str]) -> List[str]:
    domains: List[str] = []
    for path in files:
        for domain in infer_domains(path):
            if domain not in domains:
                domains.append(domain)
    return domains


def normalize_file_path(file_path: str, project_dir: Path) -> str:
    """
    Normalize a tool-reported path to a project-relative POSIX path.

    Paths outside the project stay absolute.
    """
    raw = str(file_path).strip()
    path = Path(raw).expanduser()
    if path.is_absolute():
        try:
            return path.resolve().relative_to(Path(project_dir).resolve()).as_posix()
        except ValueError:
            return path.as_posix()
    posix = PurePosixPath(raw.replace("\\", "/")).as_posix()
    while posix.startswith("./"):
        posix = posix[2:]
    return posix


# =============================================================================
# SESSION RECORD
# =============================================================================


def _str_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def _int(value, default: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


@dataclass
class SessionRecord:
    """
    State of one session.

    activated_skills maps skill name to activation timestamps (epoch ms,
    oldest first). current_prompt_skills is per-turn scratch space: it stops
    one turn's several hook callbacks from recording the same skill twice.
    """
    activated_skills: Dict[str, List[int]] = field(default_factory=dict)
    modified_files: List[str] = field(default_factory=list)
    active_domains: List[str] = field(default_factory=list)
    current_prompt_skills: List[str] = field(default_factory=list)
    tool_use_count: int = 0
    created_at: int = 0
    updated_at: int = 0

    def last_activation(self, skill_name: str) -> Optional[int]:
        stamps = self.activated_skills.get(skill_name)
        return max(stamps) if stamps else None

    def to_dict(self) -> dict:
        return {
            "activatedSkills": {k: list(v) for k, v in self.activated_skills.items()},
            "modifiedFiles": list(self.modified_files),
            "activeDomains": list(self.active_domains),
            "currentPromptSkills": list(self.current_prompt_skills),
            "toolUseCount": self.tool_use_count,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        """Build a record, dropping any field with the wrong shape."""
        if not isinstance(data, dict):
            return cls()
        activated: Dict[str, List[int]] = {}
        raw_activated = data.get("activatedSkills")
        if isinstance(raw_activated, dict):
            for name, stamps in raw_activated.items():
                # Older stores kept a single timestamp per skill
                if not isinstance(stamps, list):
                    stamps = [stamps]
                clean = [_int(s) for s in stamps if _int(s, -1) >= 0]
                if clean:
                    activated[name] = sorted(clean)
        return cls(
            activated_skills=activated,
            modified_files=_str_list(data.get("modifiedFiles")),
            active_domains=_str_list(data.get("activeDomains")),
            current_prompt_skills=_str_list(data.get("currentPromptSkills")),
            tool_use_count=_int(data.get("toolUseCount")),
            created_at=_int(data.get("createdAt")),
            updated_at=_int(data.get("updatedAt")),
        )


def _empty_document() -> dict:
    return {"version": STORE_VERSION, "sessions": {}}


def _require_session_id(session_id: str) -> str:
    if not isinstance(session_id, str) or not session_id.strip():
        raise ValueError("session_id must be a non-empty string")
    return session_id


# =============================================================================
# STORE
# =============================================================================


class SessionStore:
    """
    Project-scoped store of SessionRecords.

    Args:
        project_dir: Project root; the store lives in .claude/cache/ below it
        clock: Returns "now" in epoch milliseconds (tests inject a fake)
        store_path: Override the store file location
    """

    def __init__(
        self,
        project_dir: Path,
        clock: Optional[Clock] = None,
        store_path: Optional[Path] = None,
    ):
        self.project_dir = Path(project_dir)
        self.clock: Clock = clock or wall_clock_ms
        self.path = Path(store_path) if store_path else cache_dir(self.project_dir) / STORE_FILENAME
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    # -- file primitives ------------------------------------------------------

    def _ensure_dir(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StateError(f"cannot create {self.path.parent}: {e}") from e

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Exclusive inter-process lock for read-modify-write cycles."""
        self._ensure_dir()
        try:
            lock_fd = os.open(str(self.lock_path), os.O_CREAT | os.O_RDWR, 0o644)
        except OSError as e:
            raise StateError(f"cannot open lock file {self.lock_path}: {e}") from e
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)
            os.close(lock_fd)

    def _read_document(self) -> dict:
        """
        Read and validate the store document.

        Returns:
            The document (an empty one if the file does not exist)

        Raises:
            StateError: If the file is unreadable, not JSON, or has an
                unexpected shape or version
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return _empty_document()
        except (OSError, UnicodeDecodeError) as e:
            raise StateError(f"cannot read {self.path}: {e}") from e
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as e:
            raise StateError(f"corrupt session store {self.path}: {e}") from e
        if not isinstance(doc, dict) or not isinstance(doc.get("sessions"), dict):
            raise StateError(f"corrupt session store {self.path}: missing sessions")
        if doc.get("version") != STORE_VERSION:
            raise StateError(
                f"unsupported session store version {doc.get('version')!r} in {self.path}"
            )
        return doc

    def _read_document_or_empty(self) -> dict:
        try:
            return self._read_document()
        except StateError as e:
            logger.warning("session store unreadable, treating as empty: %s", e)
            return _empty_document()

    def _write_document(self, doc: dict) -> None:
        """Atomically replace the store file (caller holds the lock)."""
        self._ensure_dir()
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
        except OSError as e:
            raise StateError(f"cannot write {self.path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StateError(f"cannot write {self.path}: {e}") from e

    def _mutate(self, session_id: str, modifier: Callable[[SessionRecord, int], object]):
        """
        Apply modifier(record, now) to one session and commit the document.

        The record is created lazily on first reference.
        """
        _require_session_id(session_id)
        with self._locked():
            doc = self._read_document_or_empty()
            now = self.clock()
            raw = doc["sessions"].get(session_id)
            record = SessionRecord.from_dict(raw) if raw is not None else SessionRecord(created_at=now)
            result = modifier(record, now)
            record.updated_at = now
            doc["sessions"][session_id] = record.to_dict()
            self._write_document(doc)
        return result

    # -- lifecycle ------------------------------------------------------------

    def init(self) -> "SessionStore":
        """
        Make the store usable for this invocation.

        A missing file is created empty; an unreadable or corrupt file is
        reset to an empty document. Never raises for a damaged store.
        """
        try:
            with self._locked():
                try:
                    self._read_document()
                    if not self.path.exists():
                        self._write_document(_empty_document())
                except StateError as e:
                    logger.warning("resetting session store: %s", e)
                    self._write_document(_empty_document())
        except StateError as e:
            logger.warning("session store unavailable: %s", e)
        return self

    def reset(self) -> None:
        """Drop every session record."""
        with self._locked():
            self._write_document(_empty_document())

    # -- reads ----------------------------------------------------------------

    def session_ids(self) -> List[str]:
        return list(self._read_document_or_empty()["sessions"].keys())

    def get_record(self, session_id: str) -> SessionRecord:
        """Snapshot of a session (an empty record if it does not exist yet)."""
        _require_session_id(session_id)
        raw = self._read_document_or_empty()["sessions"].get(session_id)
        return SessionRecord.from_dict(raw) if raw is not None else SessionRecord()

    def get_activated_skills(self, session_id: str) -> List[str]:
        return list(self.get_record(session_id).activated_skills.keys())

    def get_modified_files(self, session_id: str) -> List[str]:
        return self.get_record(session_id).modified_files

    def get_active_domains(self, session_id: str) -> List[str]:
        return self.get_record(session_id).active_domains

    def get_tool_use_count(self, session_id: str) -> int:
        return self.get_record(session_id).tool_use_count

    def was_recently_activated(
        self,
        session_id: str,
        skill_name: str,
        window_ms: float,
        now: Optional[int] = None,
    ) -> bool:
        """True iff the skill's most recent activation is within window_ms of now."""
        last = self.get_record(session_id).last_activation(skill_name)
        if last is None:
            return False
        if now is None:
            now = self.clock()
        return now - last < window_ms

    # -- mutations ------------------------------------------------------------

    def record_skill_activation(self, session_id: str, skill_name: str) -> bool:
        """
        Record that a skill was activated now.

        Returns:
            False if the skill was already recorded during the current prompt
            turn (no new timestamp is added), True otherwise
        """
        def modify(record: SessionRecord, now: int) -> bool:
            if skill_name in record.current_prompt_skills:
                return False
            stamps = record.activated_skills.setdefault(skill_name, [])
            stamps.append(now)
            del stamps[:-MAX_TIMESTAMPS_PER_SKILL]
            record.current_prompt_skills.append(skill_name)
            return True

        return self._mutate(session_id, modify)

    def clear_current_prompt_skills(self, session_id: str) -> None:
        """Reset the per-turn scratch set; activation history is untouched."""
        def modify(record: SessionRecord, now: int) -> None:
            record.current_prompt_skills = []

        self._mutate(session_id, modify)

    def add_modified_file(self, session_id: str, file_path: str) -> str:
        """
        Track a modified file and re-derive the session's active domains.

        Returns:
            The normalized path that was stored
        """
        normalized = normalize_file_path(file_path, self.project_dir)

        def modify(record: SessionRecord, now: int) -> None:
            if normalized not in record.modified_files:
                record.modified_files.append(normalized)
            record.active_domains = derive_active_domains(record.modified_files)

        self._mutate(session_id, modify)
        return normalized

    def increment_tool_use_count(self, session_id: str) -> int:
        def modify(record: SessionRecord, now: int) -> int:
            record.tool_use_count += 1
            return record.tool_use_count

        return self._mutate(session_id, modify)

    def prune_stale_activations(self, session_id: str, max_age_ms: int) -> int:
        """
        Drop activation timestamps older than max_age_ms.

        The most recent timestamp of every skill is always kept so cooldown
        decisions do not change.

        Returns:
            Number of timestamps removed
        """
        def modify(record: SessionRecord, now: int) -> int:
            removed = 0
            for name, stamps in record.activated_skills.items():
                keep = [s for s in stamps[:-1] if now - s <= max_age_ms] + stamps[-1:]
                removed += len(stamps) - len(keep)
                record.activated_skills[name] = keep
            return removed

        return self._mutate(session_id, modify)

    def cleanup_old_sessions(self, max_age_ms: int = DEFAULT_SESSION_MAX_AGE_MS) -> List[str]:
        """
        Remove sessions not updated within max_age_ms.

        Returns:
            IDs of the removed sessions
        """
        with self._locked():
            doc = self._read_document_or_empty()
            now = self.clock()
            removed = []
            for session_id, raw in list(doc["sessions"].items()):
                record = SessionRecord.from_dict(raw)
                last_seen = record.updated_at or record.created_at
                if now - last_seen > max_age_ms:
                    del doc["sessions"][session_id]
                    removed.append(session_id)
            if removed:
                self._write_document(doc)
        return removed
