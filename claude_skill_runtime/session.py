"""Read-only view of one session for validators and other consumers."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Pattern, Union

from claude_skill_runtime.session_state import SessionStore


@dataclass
class ModifiedFile:
    path: str
    absolute_path: Path
    content: str
    extension: str


class Session:
    """
    Answers questions like "was skill X active this session".

    Every call reads the current store snapshot; nothing is cached and
    nothing is written.
    """

    def __init__(self, session_id: str, store: SessionStore):
        self.session_id = session_id
        self.store = store

    @property
    def project_dir(self) -> Path:
        return self.store.project_dir

    def is_skill_active(self, skill_name: str) -> bool:
        return skill_name in self.store.get_activated_skills(self.session_id)

    def get_activated_skills(self) -> List[str]:
        return self.store.get_activated_skills(self.session_id)

    def get_active_domains(self) -> List[str]:
        return self.store.get_active_domains(self.session_id)

    def get_modified_files(self) -> List[ModifiedFile]:
        """Modified files with their current content ('' if unreadable)."""
        files = []
        for rel in self.store.get_modified_files(self.session_id):
            absolute = Path(rel) if Path(rel).is_absolute() else self.project_dir / rel
            try:
                content = absolute.read_text(encoding="utf-8", errors="replace")
            except OSError:
                # deleted or unreadable since it was tracked
                content = ""
            files.append(ModifiedFile(
                path=rel,
                absolute_path=absolute,
                content=content,
                extension=absolute.suffix,
            ))
        return files

    def has_modified_files(self, pattern: Union[str, Pattern]) -> bool:
        """Substring test for strings, regex search for compiled patterns."""
        paths = self.store.get_modified_files(self.session_id)
        if isinstance(pattern, str):
            return any(pattern in p for p in paths)
        return any(re.search(pattern, p) for p in paths)


def create_session(session_id: str, project_dir: Path) -> Session:
    return Session(session_id, SessionStore(project_dir))
