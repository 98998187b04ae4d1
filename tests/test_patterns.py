"""Tests for trigger pattern compilation and the path glob dialect."""

import pytest

from claude_skill_runtime.errors import ConfigError, PatternError
from claude_skill_runtime.patterns import (
    PatternKind,
    compile_content_regex,
    compile_intent,
    compile_keyword,
    compile_path_glob,
    compile_pattern,
    compile_patterns,
    glob_to_regex,
)


class TestKeyword:
    def test_case_insensitive_substring(self):
        kw = compile_keyword("Terraform")
        assert kw.matches("please apply terraform now")
        assert kw.matches("TERRAFORM plan")
        assert not kw.matches("please apply terra form")

    def test_regex_metacharacters_are_literal(self):
        kw = compile_keyword("c++")
        assert kw.matches("port this to C++")
        assert not kw.matches("port this to c")

    def test_empty_text_never_matches(self):
        assert not compile_keyword("api").matches("")

    def test_blank_keyword_rejected(self):
        with pytest.raises(PatternError):
            compile_keyword("   ")


class TestIntentAndContent:
    def test_intent_is_searched_case_insensitively(self):
        intent = compile_intent(r"(create|add).*?(route|endpoint)")
        assert intent.matches("Please ADD a new Endpoint for users")
        assert not intent.matches("delete the endpoint")

    def test_invalid_regex_raises_pattern_error(self):
        with pytest.raises(PatternError) as exc_info:
            compile_intent("(unclosed")
        assert exc_info.value.kind == "intent"
        assert exc_info.value.pattern == "(unclosed"
        # PatternError is a rule error
        assert isinstance(exc_info.value, ConfigError)

    def test_content_regex_is_multiline(self):
        pattern = compile_content_regex(r"^import express")
        assert pattern.matches("// server\nimport express from 'express'\n")

    def test_non_string_pattern_rejected(self):
        with pytest.raises(PatternError):
            compile_content_regex(42)


class TestPathGlob:
    @pytest.mark.parametrize("glob,path", [
        ("src/**/*.ts", "src/api/users.ts"),
        ("src/**/*.ts", "src/index.ts"),
        ("**/*.tf", "main.tf"),
        ("**/*.tf", "infra/modules/vpc/main.tf"),
        ("*.md", "README.md"),
        ("src/?.py", "src/a.py"),
        ("**/*.{ts,tsx}", "app/components/Button.tsx"),
        ("./docs/**", "docs/guide/intro.md"),
    ])
    def test_matches(self, glob, path):
        assert compile_path_glob(glob).matches(path)

    @pytest.mark.parametrize("glob,path", [
        ("*.md", "docs/README.md"),
        ("src/*.ts", "src/api/users.ts"),
        ("src/?.py", "src/ab.py"),
        ("**/*.{ts,tsx}", "app/main.js"),
        ("src/**/*.ts", "lib/src/index.ts"),
    ])
    def test_does_not_match(self, glob, path):
        assert not compile_path_glob(glob).matches(path)

    def test_dots_are_literal(self):
        assert not compile_path_glob("*.ts").matches("indexxts")

    def test_unterminated_brace_rejected(self):
        with pytest.raises(PatternError):
            compile_path_glob("src/*.{ts,tsx")

    def test_glob_to_regex_shapes(self):
        assert glob_to_regex("**/") == "(?:.*/)?"
        assert glob_to_regex("*") == "[^/]*"
        assert glob_to_regex("?") == "[^/]"


class TestCompilePatterns:
    def test_none_is_empty(self):
        assert compile_patterns(PatternKind.KEYWORD, None) == []

    def test_order_preserved(self):
        compiled = compile_patterns(PatternKind.KEYWORD, ["b", "a", "c"])
        assert [p.source for p in compiled] == ["b", "a", "c"]
        assert all(p.kind is PatternKind.KEYWORD for p in compiled)

    def test_string_instead_of_list_rejected(self):
        with pytest.raises(PatternError):
            compile_patterns(PatternKind.KEYWORD, "terraform")

    def test_compile_pattern_accepts_kind_value(self):
        pattern = compile_pattern("path_glob", "src/**")
        assert pattern.kind is PatternKind.PATH_GLOB
        assert pattern.matches("src/a/b.py")
