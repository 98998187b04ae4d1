"""Exception hierarchy for the skill runtime.

Hook entry points catch every one of these (and anything else) at their
outer boundary and turn it into a no-op output, so none of them ever reaches
the host as a failure.
"""

from typing import Optional


class SkillRuntimeError(Exception):
    """Base class for all runtime errors."""


class HookInputError(SkillRuntimeError):
    """Malformed hook invocation payload (missing fields, bad JSON)."""


class StateError(SkillRuntimeError):
    """Session store could not be read or written."""


class ConfigError(SkillRuntimeError):
    """Rule configuration file is unreadable or fails validation.

    Attributes:
        source: Path of the offending file, when known
        skill: Name of the offending skill, when the error is rule-specific
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        skill: Optional[str] = None,
    ):
        self.source = source
        self.skill = skill
        prefix = ""
        if source:
            prefix += f"{source}: "
        if skill:
            prefix += f"skill '{skill}': "
        super().__init__(prefix + message)


class PatternError(ConfigError):
    """A trigger pattern failed to compile.

    Attributes:
        pattern: The raw pattern source
        kind: Pattern kind value (keyword, intent, path_glob, content_regex)
    """

    def __init__(self, pattern: str, kind: str, detail: str):
        self.pattern = pattern
        self.kind = kind
        super().__init__(f"invalid {kind} pattern {pattern!r}: {detail}")
