#!/usr/bin/env python3
"""
SessionStart hook: seed the session with files git reports as modified or
staged, and write the skill index to .claude/cache/file_state.json.
"""
import sys

from claude_skill_runtime.hooks import session_start_main


if __name__ == "__main__":
    sys.exit(session_start_main())
