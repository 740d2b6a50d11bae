"""Stagnation detection over the most recent iterations of a session."""

import difflib
import logging
from dataclasses import dataclass, field

from config.defaults import setting
from config.rules import ALTERNATIVE_SUGGESTIONS, DEFAULT_ALTERNATIVES
from core.state import Verdict
from feedback.classifier import classify_category

logger = logging.getLogger(__name__)

SIGNAL_CODE_SIMILARITY = "code_similarity"
SIGNAL_SCORE_PLATEAU = "score_plateau"


@dataclass(frozen=True)
class StagnationAnalysis:
    is_stagnant: bool
    recommendation: str
    alternative_suggestions: list = field(default_factory=list)
    detected_at_loop: int = 0
    similarity_score: float = 0.0
    score_range: float | None = None
    signals: list = field(default_factory=list)
    patterns: list = field(default_factory=list)


def normalize_code(code):
    """Collapse all whitespace runs so formatting-only edits compare equal."""
    return " ".join(code.split())


def code_similarity(a, b, cutoff=0.0):
    """Whitespace-insensitive similarity ratio in [0, 1].

    Below ``cutoff`` the cheap upper bound is returned instead of the exact ratio.
    """
    left, right = normalize_code(a), normalize_code(b)
    if left == right:
        return 1.0
    if not left or not right:
        return 0.0
    matcher = difflib.SequenceMatcher(None, left, right, autojunk=False)
    upper = matcher.quick_ratio()
    if upper < cutoff:
        return upper
    return matcher.ratio()


class StagnationDetector:
    """Flags a session whose candidate code or score has stopped moving.

    Two independent signals, either one sufficient:
      * code plateau: every consecutive pair in the last ``window`` candidates is
        at least ``similarity_threshold`` similar while the judge has not passed it
      * score plateau: the last ``score_window`` scores span less than ``score_range``

    Nothing is reported before ``start_loop``.
    """

    def __init__(self, start_loop=None, min_iterations=None, window=None,
                 similarity_threshold=None, score_window=None, score_range=None):
        self.start_loop = setting("stagnation_start_loop", start_loop)
        self.min_iterations = setting("stagnation_min_iterations", min_iterations)
        self.window = setting("stagnation_window", window)
        self.similarity_threshold = setting("similarity_threshold", similarity_threshold)
        self.score_window = setting("score_plateau_window", score_window)
        self.score_range = setting("score_plateau_range", score_range)

    def detect_stagnation(self, iterations, current_loop) -> StagnationAnalysis:
        if current_loop < self.start_loop or len(iterations) < self.min_iterations:
            return StagnationAnalysis(
                is_stagnant=False,
                recommendation="Not enough iterations to detect stagnation",
                detected_at_loop=current_loop,
            )

        recent = iterations[-self.window:]
        similarities = [
            code_similarity(prev.code, curr.code, self.similarity_threshold)
            for prev, curr in zip(recent, recent[1:])
        ]
        average = sum(similarities) / len(similarities) if similarities else 0.0
        last_verdict = iterations[-1].review.verdict

        signals = []
        if (similarities and last_verdict is not Verdict.PASS
                and all(s >= self.similarity_threshold for s in similarities)):
            signals.append(SIGNAL_CODE_SIMILARITY)

        spread = None
        if len(iterations) >= self.score_window:
            scores = [it.review.overall for it in iterations[-self.score_window:]]
            spread = max(scores) - min(scores)
            if spread < self.score_range:
                signals.append(SIGNAL_SCORE_PLATEAU)

        logger.debug(
            "Stagnation check at loop %d: similarities=%s score_range=%s signals=%s",
            current_loop, [round(s, 3) for s in similarities], spread, signals,
        )

        if not signals:
            return StagnationAnalysis(
                is_stagnant=False,
                recommendation="Continue iterating",
                detected_at_loop=current_loop,
                similarity_score=average,
                score_range=spread,
            )

        patterns = self._progress_patterns(recent, similarities)
        analysis = StagnationAnalysis(
            is_stagnant=True,
            recommendation=self._recommendation(patterns, signals),
            alternative_suggestions=self._alternatives(iterations[-1].review),
            detected_at_loop=current_loop,
            similarity_score=average,
            score_range=spread,
            signals=signals,
            patterns=patterns,
        )
        logger.warning("Stagnation detected at loop %d (%s)", current_loop, ", ".join(signals))
        return analysis

    def _progress_patterns(self, recent, similarities):
        patterns = []

        if len(recent) >= 2:
            before = {classify_category(c.comment) for c in recent[-2].review.inline}
            after = {classify_category(c.comment) for c in recent[-1].review.inline}
            common = before & after
            if common and len(common) >= 0.7 * min(len(before), len(after)):
                patterns.append("stuck on the same issues")

        if similarities and all(s >= self.similarity_threshold for s in similarities):
            patterns.append("making only cosmetic changes")

        for i in range(2, len(recent)):
            back = code_similarity(recent[i - 2].code, recent[i].code, 0.9)
            if back > 0.9 and similarities[i - 1] < self.similarity_threshold:
                patterns.append("reverting previous changes")
                break

        scores = [it.review.overall for it in recent]
        declines = sum(1 for prev, curr in zip(scores, scores[1:]) if curr < prev)
        if len(scores) >= 3 and declines > len(scores) / 2:
            patterns.append("showing signs of confusion")

        return patterns

    @staticmethod
    def _recommendation(patterns, signals):
        text = ""
        if patterns:
            text += f"The candidate appears to be {', '.join(patterns)}. "
        elif SIGNAL_SCORE_PLATEAU in signals:
            text += "Scores have plateaued across recent iterations. "
        text += (
            "Consider terminating the session and trying a different approach, "
            "or provide additional context to help break out of the current pattern."
        )
        return text

    @staticmethod
    def _alternatives(review):
        """1-3 suggestions keyed on the categories still open in the latest review."""
        suggestions = []
        for comment in review.inline:
            suggestion = ALTERNATIVE_SUGGESTIONS[classify_category(comment.comment)]
            if suggestion not in suggestions:
                suggestions.append(suggestion)
        if not suggestions:
            suggestions = list(DEFAULT_ALTERNATIVES)
        return suggestions[:3]
