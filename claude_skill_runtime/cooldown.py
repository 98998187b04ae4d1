"""
Cooldown decisions for matched skills.

A skill that was activated within its cooldown window is dropped before
strategy filtering and limiting, so it never takes a suggestion slot.
"""

from typing import List, Optional

from claude_skill_runtime.matcher import Match
from claude_skill_runtime.session_state import SessionStore

MINUTE_MS = 60 * 1000


def effective_cooldown_ms(match: Match, default_cooldown_ms: int) -> float:
    """The rule's cooldownMinutes when set, otherwise the global default."""
    minutes = match.rule.cooldown_minutes
    if minutes:
        return minutes * MINUTE_MS
    return default_cooldown_ms


def is_cooling_down(
    match: Match,
    store: SessionStore,
    session_id: str,
    default_cooldown_ms: int,
    now: Optional[int] = None,
) -> bool:
    return store.was_recently_activated(
        session_id,
        match.skill_name,
        effective_cooldown_ms(match, default_cooldown_ms),
        now=now,
    )


def filter_cooled_down(
    matches: List[Match],
    store: SessionStore,
    session_id: str,
    default_cooldown_ms: int,
    now: Optional[int] = None,
) -> List[Match]:
    """Matches that are not in cooldown, order preserved."""
    return [
        m for m in matches
        if not is_cooling_down(m, store, session_id, default_cooldown_ms, now=now)
    ]
