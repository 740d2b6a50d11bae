"""First-match evaluation of the feedback rule tables."""

from config.rules import (
    ACTION_PATTERNS,
    CATEGORY_PATTERNS,
    CRITICAL_INDICATORS,
    CRITICAL_TYPE_PATTERNS,
    PRIORITY_RULES,
    SEVERITY_PATTERNS,
    TERMINATION_TYPE_PATTERNS,
)
from core.state import (
    CriticalIssueType,
    IssueCategory,
    Priority,
    Severity,
    TerminationType,
)


def first_match(table, text, default):
    """Return the label of the first (pattern, label) whose pattern is found in text."""
    lowered = text.lower()
    for pattern, label in table:
        if pattern.search(lowered):
            return label
    return default


def classify_category(comment):
    return first_match(CATEGORY_PATTERNS, comment, IssueCategory.LOGIC)


def classify_priority(comment, category):
    lowered = comment.lower()
    for pattern, label, categories in PRIORITY_RULES:
        if pattern.search(lowered) or category in categories:
            return label
    return Priority.MEDIUM


def is_critical(comment):
    return bool(CRITICAL_INDICATORS.search(comment.lower()))


def classify_critical_type(comment):
    return first_match(CRITICAL_TYPE_PATTERNS, comment, CriticalIssueType.LOGIC_ERROR)


def classify_severity(comment):
    return first_match(SEVERITY_PATTERNS, comment, Severity.MINOR)


def classify_termination(reason):
    """Map a free-text termination reason to its termination type."""
    return first_match(TERMINATION_TYPE_PATTERNS, reason, TerminationType.COMPLETION)


def extract_action(comment):
    """Lift an imperative phrase ("should validate input") out of a comment.

    Falls back to a generic "Address the issue" action with the comment
    truncated to 100 characters.
    """
    for pattern in ACTION_PATTERNS:
        match = pattern.search(comment)
        if match and match.group(2).strip():
            verb = " ".join(match.group(1).lower().split())
            return f"{verb} {match.group(2).strip()}"

    suffix = "..." if len(comment) > 100 else ""
    return f"Address the issue: {comment[:100]}{suffix}"
