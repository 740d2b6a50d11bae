"""Authoritative stop/continue decision for a session."""

import logging
from dataclasses import dataclass, field

from config.defaults import setting
from config.rules import RECURRING_ISSUE_MARKERS
from core.state import Verdict
from feedback.classifier import classify_termination

logger = logging.getLogger(__name__)

CONTINUE_REASON = "Completion criteria not yet met, continuing iterations"


@dataclass(frozen=True)
class TerminationResult:
    should_terminate: bool
    reason: str
    failure_rate: float
    critical_issues: list = field(default_factory=list)
    final_assessment: str = ""

    @property
    def termination_type(self):
        return classify_termination(self.reason)


class TerminationPolicy:
    """Merges the hard loop cap, stagnation and the rolling reject rate.

    Checked in that order; the first one that fires supplies the reason.
    ``failure_rate`` is the fraction (0-1) of ``reject`` verdicts among the
    last ``failure_window`` reviews. It only terminates once the window is full.
    """

    def __init__(self, hard_max_loops=None, failure_window=None,
                 failure_rate_threshold=None, critical_issue_limit=None):
        self.hard_max_loops = setting("hard_max_loops", hard_max_loops)
        self.failure_window = setting("failure_window", failure_window)
        self.failure_rate_threshold = setting("failure_rate_threshold", failure_rate_threshold)
        self.critical_issue_limit = setting("critical_issue_limit", critical_issue_limit)

    def should_terminate(self, session, stagnation=None) -> TerminationResult:
        failure_rate = self.failure_rate(session)
        critical_issues = self.critical_issues(session)

        reason = None
        if session.current_loop >= self.hard_max_loops:
            reason = (
                f"Maximum loops ({self.hard_max_loops}) reached "
                "without achieving completion criteria"
            )
        elif stagnation is not None and stagnation.is_stagnant:
            reason = f"Stagnation detected: {stagnation.recommendation}"
        elif (len(session.history) >= self.failure_window
              and failure_rate >= self.failure_rate_threshold):
            rejected = round(failure_rate * self.failure_window)
            reason = (
                f"Repeated failure: {rejected} of the last {self.failure_window} "
                "reviews were rejected"
            )

        if reason is None:
            return TerminationResult(
                should_terminate=False,
                reason=CONTINUE_REASON,
                failure_rate=failure_rate,
                critical_issues=critical_issues,
            )

        logger.info("Session %s terminating: %s", session.id, reason)
        return TerminationResult(
            should_terminate=True,
            reason=reason,
            failure_rate=failure_rate,
            critical_issues=critical_issues,
            final_assessment=self.final_assessment(session, failure_rate, critical_issues, stagnation),
        )

    def failure_rate(self, session):
        recent = session.history[-self.failure_window:]
        if not recent:
            return 0.0
        rejected = sum(1 for entry in recent if entry.review.verdict is Verdict.REJECT)
        return rejected / len(recent)

    def critical_issues(self, session):
        """Rejected summaries and critical/security/error comments from the last three rounds."""
        issues = []
        for entry in session.history[-3:]:
            review = entry.review
            if review.verdict is Verdict.REJECT:
                issues.append(f"Loop {entry.thought_number}: {review.summary}")
            for comment in review.inline:
                if RECURRING_ISSUE_MARKERS.search(comment.comment.lower()):
                    issues.append(comment.located())
        return list(dict.fromkeys(issues))[:self.critical_issue_limit]

    @staticmethod
    def final_assessment(session, failure_rate, critical_issues, stagnation=None):
        last = session.last_review
        score = last.overall if last else 0
        verdict = last.verdict.value if last else "unknown"

        lines = [
            f"Final Assessment after {session.current_loop} loops:",
            f"- Final Score: {score}%",
            f"- Final Verdict: {verdict}",
            f"- Failure Rate: {failure_rate * 100:.1f}%",
        ]
        if critical_issues:
            lines.append("")
            lines.append("Critical Issues Remaining:")
            lines.extend(f"{i}. {issue}" for i, issue in enumerate(critical_issues[:5], 1))
            if len(critical_issues) > 5:
                lines.append(f"... and {len(critical_issues) - 5} more issues")

        lines.append("")
        if stagnation is not None and stagnation.is_stagnant:
            lines.append(f"Recommendation: {stagnation.recommendation}")
        else:
            lines.append("Recommendation: Consider manual review or alternative approach for remaining issues.")
        return "\n".join(lines)
