#!/usr/bin/env python3
"""
UserPromptSubmit hook: surface skills that match the user's prompt.

Guaranteed skills are injected with their full content, suggestive and
shadow matches are listed by name. Prints {} and exits 0 when nothing
matches or anything goes wrong.

Set SKILL_ACTIVATION_FORMAT=text for the banner-style report.
"""
import os
import sys

from claude_skill_runtime.hooks import prompt_submit_main


if __name__ == "__main__":
    sys.exit(prompt_submit_main(os.environ.get("SKILL_ACTIVATION_FORMAT") or None))
