"""Judge agent: scores a candidate against the audit rubric via Claude."""

import logging
import os

import anthropic

from config.defaults import DEFAULTS, RUBRIC_DIMENSIONS
from core.errors import JudgeError
from core.state import Dimension, JudgeCard, Review, Verdict
from utils.llm import MODEL, call_llm

logger = logging.getLogger(__name__)

_PROMPT_FILE = os.path.join(os.path.dirname(__file__), "prompts", "judge.txt")


def _load_prompt():
    with open(_PROMPT_FILE) as f:
        return f.read()


def _clamp(score):
    return max(0.0, min(100.0, float(score)))


def fallback_review(reason):
    """Degraded review used whenever the judge cannot produce one."""
    score = DEFAULTS["fallback_score"]
    return Review(
        overall=score,
        verdict=Verdict.REVISE,
        summary=f"Judge unavailable, using fallback review: {reason}",
        dimensions=[Dimension(name=name, score=score) for name in RUBRIC_DIMENSIONS],
        judge_cards=[JudgeCard(model="fallback", score=score, notes=reason)],
    )


class JudgeAgent:
    """Sends one candidate to the judge model and parses its verdict.

    Never raises for judge-side failures: API errors, a missing key and
    malformed replies all come back as ``fallback_review``.
    """

    name = "judge"

    def __init__(self, llm=call_llm):
        self._llm = llm

    def review(self, code, config, previous=None) -> Review:
        try:
            return self._review(code, config, previous)
        except (JudgeError, anthropic.APIError, RuntimeError, ValueError) as e:
            logger.warning("Judge failed, using fallback review: %s", e)
            return fallback_review(str(e))

    def _review(self, code, config, previous):
        parts = [
            f"TASK:\n{config.task}\n",
            f"SCOPE: {config.scope.value}",
            f"THRESHOLD: {config.threshold}",
        ]
        if config.paths:
            parts.append("PATHS: " + ", ".join(config.paths))
        if previous is not None:
            parts.append(
                f"\nPREVIOUS REVIEW ({previous.overall}%, {previous.verdict.value}):\n{previous.summary}"
            )
        parts.append(f"\nCANDIDATE:\n```\n{code}\n```\n")

        result = self._llm(_load_prompt(), "\n".join(parts), response_format="json")
        if not isinstance(result, dict):
            raise JudgeError("Judge reply was not a JSON object", reply=str(result)[:200])

        try:
            review = Review.from_dict(result)
        except (TypeError, ValueError) as e:
            raise JudgeError(f"Judge reply failed validation: {e}") from e

        for dimension in review.dimensions:
            dimension.score = _clamp(dimension.score)
        if not review.judge_cards:
            review.judge_cards.append(JudgeCard(model=MODEL, score=review.overall))
        logger.debug("Judge scored %s (%s)", review.overall, review.verdict.value)
        return review
