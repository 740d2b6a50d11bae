"""Default engine settings."""

import os

DEFAULTS = {
    # (min_loop, min_score, reason) evaluated top to bottom, first match wins
    "completion_tiers": [
        (10, 95, "score_95_at_10"),
        (15, 90, "score_90_at_15"),
        (20, 85, "score_85_at_20"),
    ],
    "hard_max_loops": 25,       # absolute ceiling, cannot be overridden per session

    "stagnation_start_loop": 10,
    "stagnation_min_iterations": 3,
    "stagnation_window": 3,
    "similarity_threshold": 0.95,
    "score_plateau_window": 5,
    "score_plateau_range": 2,

    "failure_window": 5,
    "failure_rate_threshold": 0.8,
    "critical_issue_limit": 10,

    "max_improvements": 10,
    "max_critical_issues": 5,
    "max_next_steps": 5,

    "session_ttl": 24 * 3600,
    "max_sessions": 200,
    "state_dir": os.environ.get("AUDITLOOP_STATE_DIR", ".auditloop-state"),

    "model": os.environ.get("AUDITLOOP_MODEL", "claude-sonnet-4-5-20250929"),
    "max_tokens": 8192,
    "judge_retries": 2,
    "fallback_score": 50,
}

DEFAULT_SESSION_CONFIG = {
    "task": "Audit and improve the provided candidate",
    "scope": "diff",
    "threshold": 85,
    "max_cycles": 1,
    "candidates": 1,
    "judges": ["internal"],
    "apply_fixes": False,
    "paths": [],
}

CONFIG_CONSTRAINTS = {
    "threshold": (0, 100),
    "max_cycles": (1, 10),
    "candidates": (1, 5),
}

RUBRIC_DIMENSIONS = ["accuracy", "completeness", "clarity", "actionability", "human_likeness"]


def setting(name, value=None):
    """``value`` when given (zero included), otherwise the default for ``name``."""
    return DEFAULTS[name] if value is None else value
