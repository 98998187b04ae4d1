"""
Compiled trigger patterns.

Every trigger in a skill rule is turned into a CompiledPattern when the rule
file is loaded. Construction validates the source and raises PatternError on
anything that cannot be evaluated, so the matcher never compiles or guesses
at match time.

Pattern kinds:
    keyword        - case-insensitive substring of the prompt
    intent         - regex searched case-insensitively in the prompt
    path_glob      - glob matched against a project-relative POSIX path
    content_regex  - regex searched in a file's text (multiline)
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Pattern

from claude_skill_runtime.errors import PatternError


class PatternKind(str, Enum):
    KEYWORD = "keyword"
    INTENT = "intent"
    PATH_GLOB = "path_glob"
    CONTENT_REGEX = "content_regex"


@dataclass(frozen=True)
class CompiledPattern:
    """A validated, pre-compiled trigger pattern.

    Attributes:
        kind: Which trigger family this pattern belongs to
        source: The pattern exactly as written in the rule file
        regex: Compiled expression (keywords compile to an escaped literal)
    """
    kind: PatternKind
    source: str
    regex: Pattern = field(compare=False, repr=False)

    def matches(self, text: str) -> bool:
        if not text:
            return False
        if self.kind is PatternKind.PATH_GLOB:
            return self.regex.fullmatch(text) is not None
        return self.regex.search(text) is not None


def _require_text(source, kind: PatternKind) -> str:
    if not isinstance(source, str):
        raise PatternError(repr(source), kind.value, "pattern must be a string")
    if not source.strip():
        raise PatternError(source, kind.value, "pattern must not be empty")
    return source


def _compile(source: str, kind: PatternKind, flags: int) -> Pattern:
    try:
        return re.compile(source, flags)
    except re.error as e:
        raise PatternError(source, kind.value, str(e)) from e


def compile_keyword(source: str) -> CompiledPattern:
    """Compile a keyword; matching is a case-insensitive substring test."""
    kind = PatternKind.KEYWORD
    source = _require_text(source, kind)
    regex = re.compile(re.escape(source.strip()), re.IGNORECASE)
    return CompiledPattern(kind, source, regex)


def compile_intent(source: str) -> CompiledPattern:
    kind = PatternKind.INTENT
    source = _require_text(source, kind)
    return CompiledPattern(kind, source, _compile(source, kind, re.IGNORECASE))


def compile_content_regex(source: str) -> CompiledPattern:
    kind = PatternKind.CONTENT_REGEX
    source = _require_text(source, kind)
    return CompiledPattern(kind, source, _compile(source, kind, re.MULTILINE))


def glob_to_regex(glob: str) -> str:
    """
    Translate a path glob into an anchored-by-fullmatch regex source.

    Supported syntax:
        **/    zero or more directories
        **     anything, including '/'
        *      anything except '/'
        ?      one character except '/'
        {a,b}  alternation (not nested)

    Raises:
        ValueError: On an unterminated '{' group
    """
    out = []
    i = 0
    n = len(glob)
    while i < n:
        c = glob[i]
        if c == "*":
            if glob.startswith("**", i):
                if glob.startswith("**/", i):
                    out.append("(?:.*/)?")
                    i += 3
                else:
                    out.append(".*")
                    i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "{":
            end = glob.find("}", i)
            if end == -1:
                raise ValueError(f"unterminated '{{' at position {i}")
            options = glob[i + 1:end].split(",")
            out.append("(?:" + "|".join(glob_to_regex(o) for o in options) + ")")
            i = end + 1
            continue
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


def compile_path_glob(source: str) -> CompiledPattern:
    kind = PatternKind.PATH_GLOB
    source = _require_text(source, kind)
    glob = source.strip().replace("\\", "/")
    if glob.startswith("./"):
        glob = glob[2:]
    try:
        regex_source = glob_to_regex(glob)
    except ValueError as e:
        raise PatternError(source, kind.value, str(e)) from e
    return CompiledPattern(kind, source, _compile(regex_source, kind, 0))


_COMPILERS = {
    PatternKind.KEYWORD: compile_keyword,
    PatternKind.INTENT: compile_intent,
    PatternKind.PATH_GLOB: compile_path_glob,
    PatternKind.CONTENT_REGEX: compile_content_regex,
}


def compile_pattern(kind: PatternKind, source: str) -> CompiledPattern:
    return _COMPILERS[PatternKind(kind)](source)


def compile_patterns(kind: PatternKind, sources) -> List[CompiledPattern]:
    """
    Compile a list of raw pattern sources of one kind.

    Args:
        kind: Pattern kind for every entry
        sources: List of strings (None is treated as empty)

    Returns:
        List of CompiledPattern in input order

    Raises:
        PatternError: If the list is not a list or any entry is invalid
    """
    if sources is None:
        return []
    if isinstance(sources, str) or not isinstance(sources, (list, tuple)):
        raise PatternError(repr(sources), PatternKind(kind).value,
                           "expected a list of patterns")
    return [compile_pattern(kind, s) for s in sources]
