"""Keyword rule tables for classifying judge feedback.

Every table is an ordered list of (compiled_pattern, label) pairs matched
against lower-cased text. The first matching pattern wins.
"""

import re

from core.state import (
    CriticalIssueType,
    IssueCategory,
    Priority,
    Severity,
    TerminationType,
)


def _any(*words):
    return re.compile("|".join(re.escape(w) for w in words))


# Inline comment -> improvement category. Default: logic.
CATEGORY_PATTERNS = [
    (_any("security", "vulnerab", "injection", "xss"), IssueCategory.SECURITY),
    (_any("performance", "optimiz", "slow", "inefficient"), IssueCategory.PERFORMANCE),
    (_any("style", "formatting", "convention", "lint"), IssueCategory.STYLE),
    (_any("logic", "algorithm", "incorrect", "bug"), IssueCategory.LOGIC),
    (_any("error", "exception", "handling", "catch"), IssueCategory.ERROR_HANDLING),
    (_any("test", "coverage", "assertion"), IssueCategory.TESTING),
    (_any("document", "comment", "readme"), IssueCategory.DOCUMENTATION),
    (_any("architecture", "design", "structure"), IssueCategory.ARCHITECTURE),
    (_any("maintain", "readable", "clean"), IssueCategory.MAINTAINABILITY),
]

# Inline comment -> priority. Each rung is (keywords, label, categories) and
# matches on a keyword or on the comment's category. Default: medium.
PRIORITY_RULES = [
    (_any("critical", "blocker", "security", "vulnerab", "data loss", "crash"),
     Priority.CRITICAL, ()),
    (_any("important", "must", "required", "error"),
     Priority.HIGH, (IssueCategory.SECURITY, IssueCategory.LOGIC)),
    (_any("minor", "style", "cosmetic", "suggestion"),
     Priority.LOW, (IssueCategory.STYLE, IssueCategory.DOCUMENTATION)),
]

CRITICAL_INDICATORS = _any(
    "critical", "blocker", "security", "vulnerab", "injection",
    "crash", "data loss", "corruption", "deadlock", "race condition",
    "infinite loop", "null pointer", "memory leak", "buffer overflow",
)

# Critical comment -> issue type. Default: logic_error.
CRITICAL_TYPE_PATTERNS = [
    (_any("security", "vulnerab", "injection", "buffer overflow"), CriticalIssueType.SECURITY_VULNERABILITY),
    (_any("performance", "bottleneck"), CriticalIssueType.PERFORMANCE_BOTTLENECK),
    (_any("infinite loop", "endless"), CriticalIssueType.INFINITE_LOOP),
    (re.compile(r"null|undefined|\bnone\b"), CriticalIssueType.NULL_POINTER),
    (re.compile(r"\brace\b|race condition|concurren"), CriticalIssueType.RACE_CONDITION),
    (_any("deadlock"), CriticalIssueType.DEADLOCK_RISK),
    (_any("leak", "memory"), CriticalIssueType.RESOURCE_LEAK),
    (_any("corruption", "data loss"), CriticalIssueType.DATA_CORRUPTION_RISK),
    (_any("compatib"), CriticalIssueType.COMPATIBILITY_ISSUE),
]

# Critical comment -> severity. Default: minor.
SEVERITY_PATTERNS = [
    (_any("blocker", "critical", "crash", "data loss"), Severity.BLOCKER),
    (_any("security", "vulnerab", "corruption"), Severity.CRITICAL),
    (_any("important", "significant"), Severity.MAJOR),
]

IMPACTS = {
    CriticalIssueType.SECURITY_VULNERABILITY: "Could allow unauthorized access or data breach",
    CriticalIssueType.LOGIC_ERROR: "May cause incorrect behavior or unexpected results",
    CriticalIssueType.PERFORMANCE_BOTTLENECK: "Could significantly degrade system performance",
    CriticalIssueType.COMPATIBILITY_ISSUE: "May prevent proper operation in target environment",
    CriticalIssueType.DATA_CORRUPTION_RISK: "Could result in loss or corruption of important data",
    CriticalIssueType.RESOURCE_LEAK: "May cause memory or resource exhaustion over time",
    CriticalIssueType.INFINITE_LOOP: "Could cause application to hang or become unresponsive",
    CriticalIssueType.NULL_POINTER: "May cause application crashes or undefined behavior",
    CriticalIssueType.RACE_CONDITION: "Could lead to unpredictable behavior in concurrent scenarios",
    CriticalIssueType.DEADLOCK_RISK: "May cause application to freeze or become unresponsive",
}

RESOLUTIONS = {
    CriticalIssueType.SECURITY_VULNERABILITY: "Implement proper input validation and security controls",
    CriticalIssueType.LOGIC_ERROR: "Review and correct the logical flow and conditions",
    CriticalIssueType.PERFORMANCE_BOTTLENECK: "Optimize algorithms and data structures for better performance",
    CriticalIssueType.COMPATIBILITY_ISSUE: "Update code to use compatible APIs and patterns",
    CriticalIssueType.DATA_CORRUPTION_RISK: "Add proper data validation and backup mechanisms",
    CriticalIssueType.RESOURCE_LEAK: "Ensure proper resource cleanup and disposal",
    CriticalIssueType.INFINITE_LOOP: "Add proper loop termination conditions",
    CriticalIssueType.NULL_POINTER: "Add null checks and proper error handling",
    CriticalIssueType.RACE_CONDITION: "Implement proper synchronization mechanisms",
    CriticalIssueType.DEADLOCK_RISK: "Review and redesign locking strategy",
}

# Imperative phrases lifted out of a comment to form the suggested action.
ACTION_PATTERNS = [
    re.compile(rf"\b({verb})\s+(.+?)(?:\.|$)", re.IGNORECASE)
    for verb in ("should", r"need\s+to", "must", "consider", "try", "use",
                 "add", "remove", "fix", "implement")
]

# Quality dimension -> (category, action). Unknown dimensions produce nothing.
DIMENSION_SUGGESTIONS = {
    "accuracy": (IssueCategory.LOGIC, "Review and correct logical errors to improve accuracy"),
    "completeness": (IssueCategory.ARCHITECTURE, "Add missing functionality to achieve completeness"),
    "clarity": (IssueCategory.MAINTAINABILITY, "Improve code readability and add explanatory comments"),
    "actionability": (IssueCategory.DOCUMENTATION, "Provide more specific and actionable implementation details"),
    "human_likeness": (IssueCategory.STYLE, "Adopt more natural and idiomatic coding patterns"),
}
DIMENSION_THRESHOLD = 80
DIMENSION_HIGH_PRIORITY_BELOW = 60

# Unresolved issue category -> way out of a stagnating loop.
ALTERNATIVE_SUGGESTIONS = {
    IssueCategory.LOGIC: "Try an alternative algorithmic approach",
    IssueCategory.ARCHITECTURE: "Break the problem into smaller, more manageable pieces",
    IssueCategory.SECURITY: "Rebuild input handling around a single validated entry point",
    IssueCategory.PERFORMANCE: "Replace the hot path with a different data structure instead of tuning it",
    IssueCategory.ERROR_HANDLING: "Define the failure modes first, then restructure the code around them",
    IssueCategory.TESTING: "Write the failing test cases first and code against them",
    IssueCategory.DOCUMENTATION: "Seek additional requirements clarification",
    IssueCategory.STYLE: "Stop polishing style and focus on the substantive review findings",
    IssueCategory.MAINTAINABILITY: "Extract the tangled parts into smaller, separately reviewable units",
}
DEFAULT_ALTERNATIVES = [
    "Try an alternative algorithmic approach",
    "Break the problem into smaller, more manageable pieces",
    "Seek additional requirements clarification",
]

# Termination reason text -> termination type. Default: completion.
TERMINATION_TYPE_PATTERNS = [
    (_any("stagnation"), TerminationType.STAGNATION),
    (_any("maximum", "loops"), TerminationType.TIMEOUT),
    (_any("failure", "failed"), TerminationType.FAILURE),
]

TERMINATION_RECOMMENDATIONS = {
    TerminationType.STAGNATION: [
        "Try a completely different approach or implementation strategy",
        "Consider breaking the problem into smaller, more manageable pieces",
        "Seek additional context or requirements clarification",
    ],
    TerminationType.TIMEOUT: [
        "Focus on the most critical issues identified in the final assessment",
        "Consider manual review of the remaining issues",
        "Use the current implementation as a foundation for future iterations",
    ],
    TerminationType.FAILURE: [
        "Review the fundamental approach and requirements",
        "Consider starting with a simpler implementation",
        "Seek guidance on the specific technical challenges encountered",
    ],
    TerminationType.COMPLETION: [],
}

# Words that mark an inline comment as worth carrying into termination analysis.
RECURRING_ISSUE_MARKERS = _any("critical", "security", "error")
