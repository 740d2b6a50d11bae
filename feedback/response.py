"""Status projections embedded alongside the feedback in a round's payload."""

import time
from dataclasses import dataclass, field

from config.defaults import DEFAULTS
from config.rules import TERMINATION_RECOMMENDATIONS
from core.state import CompletionReason, ProgressTrend, TerminationType


@dataclass(frozen=True)
class CompletionStatus:
    is_complete: bool
    reason: CompletionReason
    current_loop: int
    score: float
    threshold: float
    message: str
    progress_percentage: float


@dataclass(frozen=True)
class LoopInfo:
    current_loop: int
    max_loops: int
    progress_trend: ProgressTrend
    stagnation_detected: bool
    score_progression: list = field(default_factory=list)
    average_improvement: float = 0.0
    loops_remaining: int = 0


@dataclass(frozen=True)
class TerminationInfo:
    reason: str
    type: TerminationType
    failure_rate: float
    critical_issues: list = field(default_factory=list)
    final_assessment: str = ""
    recommendations: list = field(default_factory=list)


@dataclass(frozen=True)
class SessionMetadata:
    session_id: str
    loop_id: str | None
    session_start_time: float
    current_iteration_time: float
    total_session_time: float
    session_config: dict = field(default_factory=dict)


TERMINATION_REASONS = {
    TerminationType.STAGNATION: CompletionReason.STAGNATION_DETECTED,
    TerminationType.FAILURE: CompletionReason.REPEATED_FAILURE,
    TerminationType.TIMEOUT: CompletionReason.MAX_LOOPS_REACHED,
}


def build_completion_status(completion, score, current_loop, evaluator, termination=None) -> CompletionStatus:
    """Completion view of a round.

    A termination that ends a session the tiers did not complete marks the
    status complete with the termination's reason. Progress stays below 1.0
    in that case, since no quality tier was met.
    """
    if completion.is_complete:
        progress = 1.0
    else:
        # up to 30% credit for loops already spent, capped at 95% until complete
        loop_bonus = min(current_loop / evaluator.hard_max_loops, 0.3)
        progress = min(score / 100 + loop_bonus, 0.95)

    is_complete, reason, message = completion.is_complete, completion.reason, completion.message
    if not is_complete and termination is not None and termination.should_terminate:
        is_complete = True
        reason = TERMINATION_REASONS[termination.termination_type]
        message = termination.reason
    return CompletionStatus(
        is_complete=is_complete,
        reason=reason,
        current_loop=current_loop,
        score=score,
        threshold=evaluator.applicable_threshold(current_loop),
        message=message,
        progress_percentage=round(progress, 4),
    )


def build_loop_info(session, stagnation=None, max_loops=None) -> LoopInfo:
    max_loops = max_loops or DEFAULTS["hard_max_loops"]
    scores = [entry.review.overall for entry in session.history[-5:]]
    deltas = [b - a for a, b in zip(scores, scores[1:])]
    average = sum(deltas) / len(deltas) if deltas else 0.0

    stagnant = stagnation is not None and stagnation.is_stagnant
    if stagnant:
        trend = ProgressTrend.STAGNANT
    elif average < -1:
        trend = ProgressTrend.DECLINING
    elif len(scores) > 1 and abs(average) < 0.5:
        trend = ProgressTrend.OSCILLATING
    else:
        trend = ProgressTrend.IMPROVING

    return LoopInfo(
        current_loop=session.current_loop,
        max_loops=max_loops,
        progress_trend=trend,
        stagnation_detected=stagnant,
        score_progression=scores,
        average_improvement=round(average, 2),
        loops_remaining=max(max_loops - session.current_loop, 0),
    )


def build_termination_info(termination) -> TerminationInfo:
    kind = termination.termination_type
    return TerminationInfo(
        reason=termination.reason,
        type=kind,
        failure_rate=termination.failure_rate,
        critical_issues=list(termination.critical_issues),
        final_assessment=termination.final_assessment,
        recommendations=list(TERMINATION_RECOMMENDATIONS[kind]),
    )


def build_session_metadata(session, now=None) -> SessionMetadata:
    now = time.time() if now is None else now
    config = session.config
    return SessionMetadata(
        session_id=session.id,
        loop_id=session.loop_id,
        session_start_time=session.created_at,
        current_iteration_time=now,
        total_session_time=round(now - session.created_at, 3),
        session_config={
            "threshold": config.threshold,
            "maxCycles": config.max_cycles,
            "judges": list(config.judges),
            "scope": config.scope.value,
        },
    )
