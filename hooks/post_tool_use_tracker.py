#!/usr/bin/env python3
"""
PostToolUse hook: remember files touched by Edit/Write/MultiEdit so that
fileTriggers can match on later prompts. Prints nothing, always exits 0.
"""
import sys

from claude_skill_runtime.hooks import post_tool_use_main


if __name__ == "__main__":
    sys.exit(post_tool_use_main())
