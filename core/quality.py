"""Tiered quality gates deciding when a review loop is complete."""

from dataclasses import dataclass

from config.defaults import DEFAULTS, setting
from core.errors import ConfigurationError
from core.state import CompletionReason


@dataclass(frozen=True)
class CompletionResult:
    is_complete: bool
    reason: CompletionReason
    message: str
    next_thought_needed: bool


def validate_completion_criteria(tiers, hard_max_loops):
    """Return a list of problems with a tier ladder; empty when valid."""
    errors = []
    if not tiers:
        errors.append("At least one completion tier is required")
    previous = None
    for index, (min_loop, min_score, _reason) in enumerate(tiers, 1):
        if not 0 <= min_score <= 100:
            errors.append(f"Tier {index} score must be between 0 and 100")
        if min_loop < 1:
            errors.append(f"Tier {index} minimum loop must be at least 1")
        if previous:
            if min_loop < previous[0]:
                errors.append(f"Tier {index} minimum loop must be >= tier {index - 1}")
            if min_score > previous[1]:
                errors.append(f"Tier {index - 1} score should be >= tier {index} score")
        previous = (min_loop, min_score)
    if previous and hard_max_loops < previous[0]:
        errors.append("Hard stop must be >= the last tier's minimum loop")
    return errors


class CompletionEvaluator:
    """Pure (score, loop) -> completion decision over a fixed tier ladder.

    Each tier needs both a minimum loop count and a minimum score, so an early
    lucky score cannot end a session that has not shown it is stable. The hard
    loop cap fires regardless of score.
    """

    def __init__(self, tiers=None, hard_max_loops=None):
        self.tiers = [tuple(t) for t in (tiers or DEFAULTS["completion_tiers"])]
        self.hard_max_loops = setting("hard_max_loops", hard_max_loops)
        errors = validate_completion_criteria(self.tiers, self.hard_max_loops)
        if errors:
            raise ConfigurationError(errors)

    def evaluate_completion(self, score, current_loop) -> CompletionResult:
        for tier_index, (min_loop, min_score, reason) in enumerate(self.tiers, 1):
            if current_loop >= min_loop and score >= min_score:
                return CompletionResult(
                    is_complete=True,
                    reason=CompletionReason(reason),
                    message=f"Tier {tier_index} completion achieved: {score}% score at loop {current_loop}",
                    next_thought_needed=False,
                )

        if current_loop >= self.hard_max_loops:
            return CompletionResult(
                is_complete=True,
                reason=CompletionReason.MAX_LOOPS_REACHED,
                message=(
                    f"Maximum loops ({self.hard_max_loops}) reached. "
                    "Terminating with current results."
                ),
                next_thought_needed=False,
            )

        return CompletionResult(
            is_complete=False,
            reason=CompletionReason.IN_PROGRESS,
            message=self.progress_message(score, current_loop),
            next_thought_needed=True,
        )

    def applicable_threshold(self, current_loop):
        """Score required by the most relaxed tier the loop count has reached.

        Before any tier is reachable the strictest tier is the target.
        """
        threshold = self.tiers[0][1]
        for min_loop, min_score, _reason in self.tiers:
            if current_loop >= min_loop:
                threshold = min_score
        return threshold

    def progress_message(self, score, current_loop):
        threshold = self.applicable_threshold(current_loop)
        remaining = max(self.hard_max_loops - current_loop, 0)
        if score >= threshold:
            return (
                f"Score {score}% meets threshold {threshold}% but minimum loops not reached. "
                "Continue improving."
            )
        return (
            f"Score {score}% needs {threshold - score}% improvement to reach {threshold}% "
            f"threshold. {remaining} loops remaining."
        )
