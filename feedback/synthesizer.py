"""Turns a judge review into structured, prioritized guidance. Zero LLM calls."""

import logging
from dataclasses import dataclass, field

from config.defaults import setting
from config.rules import (
    DIMENSION_HIGH_PRIORITY_BELOW,
    DIMENSION_SUGGESTIONS,
    DIMENSION_THRESHOLD,
    IMPACTS,
    RESOLUTIONS,
)
from core.state import (
    PRIORITY_ORDER,
    SEVERITY_ORDER,
    CriticalIssueType,
    IssueCategory,
    Priority,
    Severity,
    Verdict,
)
from feedback.classifier import (
    classify_category,
    classify_critical_type,
    classify_priority,
    classify_severity,
    extract_action,
    is_critical,
)
from feedback.progress import ProgressAssessment, assess_progress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImprovementSuggestion:
    category: IssueCategory
    priority: Priority
    description: str
    action: str
    location: dict | None = None


@dataclass(frozen=True)
class CriticalIssue:
    type: CriticalIssueType
    severity: Severity
    description: str
    impact: str
    resolution: str
    location: dict | None = None


@dataclass(frozen=True)
class NextStep:
    step: int
    action: str
    rationale: str
    expected_outcome: str
    priority: Priority


@dataclass(frozen=True)
class StructuredFeedback:
    summary: str
    improvements: list = field(default_factory=list)
    critical_issues: list = field(default_factory=list)
    next_steps: list = field(default_factory=list)
    progress_assessment: ProgressAssessment | None = None


def _location(comment):
    if not comment.path:
        return None
    return {"path": comment.path, "line": comment.line}


def _plural(count, word):
    return f"{count} {word}{'s' if count != 1 else ''}"


class FeedbackSynthesizer:
    """Pure function of its inputs: same review and history, same feedback."""

    def __init__(self, max_improvements=None, max_critical_issues=None, max_next_steps=None):
        self.max_improvements = setting("max_improvements", max_improvements)
        self.max_critical_issues = setting("max_critical_issues", max_critical_issues)
        self.max_next_steps = setting("max_next_steps", max_next_steps)

    def build_structured_feedback(self, review, session=None, stagnation=None,
                                  termination=None) -> StructuredFeedback:
        improvements = self.improvements(review)
        critical_issues = self.critical_issues(review, termination)
        next_steps = self.next_steps(review, improvements, critical_issues, stagnation)
        history = session.history if session is not None else ()
        progress = assess_progress(review, history, stagnation)

        logger.debug(
            "Feedback: %d improvements, %d critical issues, %d next steps, trend %s",
            len(improvements), len(critical_issues), len(next_steps), progress.trend.value,
        )
        return StructuredFeedback(
            summary=self.summary(review, len(improvements), len(critical_issues), progress),
            improvements=improvements[:self.max_improvements],
            critical_issues=critical_issues[:self.max_critical_issues],
            next_steps=next_steps[:self.max_next_steps],
            progress_assessment=progress,
        )

    def improvements(self, review):
        suggestions = []
        for comment in review.inline:
            if not comment.comment.strip():
                continue
            category = classify_category(comment.comment)
            suggestions.append(ImprovementSuggestion(
                category=category,
                priority=classify_priority(comment.comment, category),
                description=comment.comment,
                action=extract_action(comment.comment),
                location=_location(comment),
            ))

        for dimension in review.dimensions:
            mapped = DIMENSION_SUGGESTIONS.get(dimension.name.lower())
            if mapped is None or dimension.score >= DIMENSION_THRESHOLD:
                continue
            category, action = mapped
            suggestions.append(ImprovementSuggestion(
                category=category,
                priority=Priority.HIGH if dimension.score < DIMENSION_HIGH_PRIORITY_BELOW else Priority.MEDIUM,
                description=f"{dimension.name} score is {dimension.score:g}% - below optimal threshold",
                action=action,
            ))

        # sorted() is stable, so equal priorities keep review order
        return sorted(suggestions, key=lambda s: PRIORITY_ORDER[s.priority])

    def critical_issues(self, review, termination=None):
        issues = []
        # termination entries already reported from this review's comments
        reported = set()
        for comment in review.inline:
            if not comment.comment or not is_critical(comment.comment):
                continue
            reported.add(comment.located())
            issue_type = classify_critical_type(comment.comment)
            severity = classify_severity(comment.comment)
            impact = IMPACTS[issue_type]
            if severity in (Severity.BLOCKER, Severity.CRITICAL):
                impact += " - immediate attention required"
            issues.append(CriticalIssue(
                type=issue_type,
                severity=severity,
                description=comment.comment,
                impact=impact,
                resolution=RESOLUTIONS[issue_type],
                location=_location(comment),
            ))

        if termination is not None and termination.should_terminate:
            for description in termination.critical_issues:
                if description in reported:
                    continue
                issues.append(CriticalIssue(
                    type=CriticalIssueType.LOGIC_ERROR,
                    severity=Severity.MAJOR,
                    description=description,
                    impact="Prevents successful completion of the task",
                    resolution="Address the underlying issue causing repeated failures",
                ))

        return sorted(issues, key=lambda i: SEVERITY_ORDER[i.severity])

    @staticmethod
    def next_steps(review, improvements, critical_issues, stagnation=None):
        steps = []

        def add(action, rationale, expected_outcome, priority):
            steps.append(NextStep(
                step=len(steps) + 1,
                action=action,
                rationale=rationale,
                expected_outcome=expected_outcome,
                priority=priority,
            ))

        if stagnation is not None and stagnation.is_stagnant:
            add("Break out of stagnation pattern", stagnation.recommendation,
                "Resume meaningful progress toward completion", Priority.CRITICAL)
            for suggestion in stagnation.alternative_suggestions[:2]:
                add(suggestion, "Alternative approach to overcome current obstacles",
                    "Different perspective may lead to breakthrough", Priority.HIGH)

        blockers = [i for i in critical_issues if i.severity in (Severity.BLOCKER, Severity.CRITICAL)]
        for issue in blockers[:2]:
            add(issue.resolution, f"Critical issue: {issue.description}",
                f"Resolve {issue.type.value} to prevent {issue.impact.lower()}", Priority.CRITICAL)

        urgent = [s for s in improvements if s.priority in (Priority.CRITICAL, Priority.HIGH)]
        for suggestion in urgent[:3]:
            category = suggestion.category.value
            add(suggestion.action, f"{category} improvement needed: {suggestion.description}",
                f"Improved {category} score and overall quality", suggestion.priority)

        if review.verdict is Verdict.REVISE:
            add("Implement remaining improvements and resubmit",
                "Code needs revision to meet quality standards",
                "Higher audit score and potential approval", Priority.MEDIUM)
        elif review.verdict is Verdict.REJECT:
            add("Redesign approach to address fundamental issues",
                "Current implementation has significant problems",
                "Fresh approach may resolve persistent issues", Priority.HIGH)

        return steps

    @staticmethod
    def summary(review, improvement_count, critical_count, progress):
        parts = [f'Audit completed with {review.overall:g}% score and "{review.verdict.value}" verdict.']
        if critical_count:
            parts.append(f"{_plural(critical_count, 'critical issue')} identified that require immediate attention.")
        if improvement_count:
            parts.append(f"{_plural(improvement_count, 'improvement suggestion')} provided.")
        parts.append(f"Progress trend: {progress.trend.value}.")
        if progress.recommendations:
            parts.append(f"Key recommendation: {progress.recommendations[0]}")
        return " ".join(parts)
