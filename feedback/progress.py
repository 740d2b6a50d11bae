"""Score-trend assessment across a session's history."""

from dataclasses import dataclass, field

from core.state import ProgressTrend, Verdict


@dataclass(frozen=True)
class ProgressAssessment:
    trend: ProgressTrend
    confidence: float
    factors: list = field(default_factory=list)
    recommendations: list = field(default_factory=list)


def _score_band(score):
    """(factor, recommendation) for the current absolute score."""
    if score >= 90:
        return "High audit score achieved", "Focus on final polish and edge cases"
    if score >= 70:
        return "Good progress with room for improvement", "Address remaining medium-priority issues"
    if score >= 50:
        return "Moderate progress but significant work needed", "Focus on high-priority issues first"
    return (
        "Low audit score indicates fundamental issues",
        "Consider redesigning approach or seeking guidance",
    )


def assess_progress(review, history=(), stagnation=None) -> ProgressAssessment:
    """Classify the recent score trend.

    Stagnation from the detector wins outright. Otherwise the delta between
    the first and last of the last three scores decides: above 2 improving,
    below -2 declining, within 1 stagnant, anything else oscillating.
    """
    if stagnation is not None and stagnation.is_stagnant:
        return ProgressAssessment(
            trend=ProgressTrend.STAGNANT,
            confidence=0.9,
            factors=["Stagnation detected in recent iterations"],
            recommendations=["Try alternative approaches to break stagnation"],
        )

    trend = ProgressTrend.IMPROVING
    confidence = 0.5
    factors = []
    recommendations = []

    if len(history) > 1:
        recent = [entry.review.overall for entry in history[-3:]]
        delta = recent[-1] - recent[0]
        if delta > 2:
            trend = ProgressTrend.IMPROVING
            factors.append("Scores improving over recent iterations")
            recommendations.append("Continue current approach with refinements")
        elif delta < -2:
            trend = ProgressTrend.DECLINING
            factors.append("Scores declining in recent iterations")
            recommendations.append("Review recent changes and consider reverting problematic modifications")
        elif abs(delta) <= 1:
            trend = ProgressTrend.STAGNANT
            factors.append("Scores plateauing without significant improvement")
            recommendations.append("Focus on addressing different types of issues")
        else:
            trend = ProgressTrend.OSCILLATING
            factors.append("Scores fluctuating without clear direction")
            recommendations.append("Establish consistent improvement strategy")
        confidence = min(0.9, 0.5 + 0.1 * len(history))

        previous, latest = history[-2].review.verdict, history[-1].review.verdict
        if previous is Verdict.REJECT and latest is Verdict.REVISE:
            factors.append("Verdict improved from reject to revise")
        elif previous is Verdict.REVISE and latest is Verdict.REJECT:
            factors.append("Verdict declined from revise to reject")
            trend = ProgressTrend.DECLINING

    factor, recommendation = _score_band(review.overall)
    factors.append(factor)
    recommendations.append(recommendation)
    if review.overall < 50 and trend is ProgressTrend.IMPROVING:
        trend = ProgressTrend.STAGNANT

    return ProgressAssessment(
        trend=trend,
        confidence=round(confidence, 2),
        factors=factors,
        recommendations=recommendations,
    )
