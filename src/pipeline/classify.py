"""Pure classification helpers: bots, AI assistance, states and cycle time.

The heuristics are ordered rule tables evaluated first-match-wins, so new
patterns are added as data rather than as new branches.
"""

from __future__ import annotations

import datetime as dt
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

BotRule = Tuple[str, Callable[[str], bool]]

BOT_RULES: List[BotRule] = [
    ("suffix [bot]", lambda name: name.endswith("[bot]")),
    ("prefix dependabot", lambda name: name.startswith("dependabot")),
    ("prefix renovate", lambda name: name.startswith("renovate")),
    ("prefix github-actions", lambda name: name.startswith("github-actions")),
    ("prefix codecov", lambda name: name.startswith("codecov")),
    ("contains -bot", lambda name: "-bot" in name),
    ("contains _bot", lambda name: "_bot" in name),
    ("exact web-flow", lambda name: name == "web-flow"),
]


def bot_rule_for(username: Optional[str]) -> Optional[str]:
    """Return the name of the first bot rule matching `username`, if any."""
    if not username:
        return None
    lower = username.lower()
    for name, predicate in BOT_RULES:
        if predicate(lower):
            return name
    return None


def is_bot(username: Optional[str]) -> bool:
    return bot_rule_for(username) is not None


def is_jira_app(person: Optional[Dict[str, Any]]) -> bool:
    """True for Jira app accounts and users whose display name matches a bot rule."""
    if not person:
        return False
    return person.get("accountType") == "app" or is_bot(person.get("displayName"))


class AiToolRule:
    """One assistance rule: trigger phrases, a tool label, an optional model pattern."""

    def __init__(self, tool: str, phrases: Tuple[str, ...],
                 model_pattern: Optional[str] = None, model_prefix: str = "") -> None:
        self.tool = tool
        self.phrases = phrases
        self.model_re = re.compile(model_pattern, re.IGNORECASE) if model_pattern else None
        self.model_prefix = model_prefix

    def matches(self, lower_text: str) -> bool:
        return any(phrase in lower_text for phrase in self.phrases)

    def extract_model(self, text: str) -> Optional[str]:
        if not self.model_re:
            return None
        match = self.model_re.search(text)
        if not match or not match.group(1):
            return None
        return f"{self.model_prefix}{match.group(1)}"


AI_TOOL_RULES: List[AiToolRule] = [
    AiToolRule("Cursor", ("cursor:", "generated by cursor")),
    AiToolRule("GitHub Copilot", ("copilot", "co-pilot", "github copilot")),
    AiToolRule("Claude", ("claude", "anthropic"), model_pattern=r"claude[\s-]*([\w.-]+)"),
    AiToolRule("ChatGPT", ("chatgpt", "gpt-"), model_pattern=r"gpt-([\w.-]+)", model_prefix="gpt-"),
]


def detect_ai_tool(message: Optional[str]) -> Dict[str, Any]:
    """Classify a commit message; only textual traces of assistance are visible."""
    text = message or ""
    lower = text.lower()
    for rule in AI_TOOL_RULES:
        if rule.matches(lower):
            return {"isAiAssisted": True, "aiTool": rule.tool, "aiModel": rule.extract_model(text)}
    return {"isAiAssisted": False, "aiTool": None, "aiModel": None}


REVIEW_STATES = {"approved", "changes_requested", "commented", "dismissed"}

JIRA_STATE_BY_CATEGORY = {
    "new": "open",
    "to do": "open",
    "indeterminate": "in_progress",
    "in progress": "in_progress",
    "done": "resolved",
}


def map_pr_state(pr: Dict[str, Any]) -> str:
    if pr.get("merged_at"):
        return "merged"
    if pr.get("state") == "closed":
        return "closed"
    return "open"


def map_issue_state(raw_state: Optional[str]) -> str:
    return "closed" if raw_state == "closed" else "open"


def map_review_state(raw_state: Optional[str]) -> Optional[str]:
    """Lower-case review state, or None for states we do not export (PENDING)."""
    state = (raw_state or "").lower()
    return state if state in REVIEW_STATES else None


def map_jira_state(status_category: Optional[str]) -> str:
    return JIRA_STATE_BY_CATEGORY.get((status_category or "").lower(), "open")


def parse_timestamp(raw: Optional[str]) -> Optional[dt.datetime]:
    """Parse ISO-8601 from GitHub (`Z`) or Jira (`+0000`, millis); None if unparseable."""
    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    match = re.match(r"^(.*[T ]\d{2}:\d{2}:\d{2}(?:\.\d+)?)([+-]\d{2})(\d{2})$", text)
    if match:
        text = f"{match.group(1)}{match.group(2)}:{match.group(3)}"
    try:
        value = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value


def cycle_time_hours(start: Optional[str], end: Optional[str]) -> Optional[float]:
    """Hours between creation and terminal timestamp, 2 decimals; None while open.

    Zero and negative durations are returned unchanged.
    """
    if not end:
        return None
    start_ts = parse_timestamp(start)
    end_ts = parse_timestamp(end)
    if not start_ts or not end_ts:
        return None
    return round((end_ts - start_ts).total_seconds() / 3600, 2)


__all__ = [
    "BOT_RULES",
    "bot_rule_for",
    "is_bot",
    "is_jira_app",
    "AiToolRule",
    "AI_TOOL_RULES",
    "detect_ai_tool",
    "REVIEW_STATES",
    "JIRA_STATE_BY_CATEGORY",
    "map_pr_state",
    "map_issue_state",
    "map_review_state",
    "map_jira_state",
    "parse_timestamp",
    "cycle_time_hours",
]
