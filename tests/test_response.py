"""Tests for feedback.response and core.payload."""

from core.payload import camel_case, to_payload
from core.quality import CompletionEvaluator
from core.stagnation import StagnationAnalysis
from core.state import (
    CompletionReason,
    HistoryEntry,
    ProgressTrend,
    Review,
    SessionConfig,
    SessionState,
    TerminationType,
    Verdict,
)
from core.termination import TerminationResult
from feedback.response import (
    build_completion_status,
    build_loop_info,
    build_session_metadata,
    build_termination_info,
)


def _make_session(scores, created_at=100.0):
    config = SessionConfig(task="Audit", threshold=90, judges=("internal", "peer"))
    session = SessionState(id="s1", config=config, created_at=created_at, updated_at=created_at,
                           loop_id="loop-7")
    for i, score in enumerate(scores, 1):
        session.history.append(HistoryEntry(i, Review(overall=score, verdict=Verdict.REVISE), config, float(i)))
    session.current_loop = len(scores)
    return session


def test_completion_status_in_progress():
    evaluator = CompletionEvaluator()
    completion = evaluator.evaluate_completion(70, 5)
    status = build_completion_status(completion, 70, 5, evaluator)
    assert status.is_complete is False
    assert status.threshold == 95
    # 0.70 + 5/25
    assert status.progress_percentage == 0.9


def test_completion_status_progress_is_capped_until_complete():
    evaluator = CompletionEvaluator()
    completion = evaluator.evaluate_completion(94, 12)
    status = build_completion_status(completion, 94, 12, evaluator)
    assert status.progress_percentage == 0.95


def test_completion_status_complete():
    evaluator = CompletionEvaluator()
    completion = evaluator.evaluate_completion(96, 10)
    status = build_completion_status(completion, 96, 10, evaluator)
    assert status.is_complete is True
    assert status.reason is CompletionReason.SCORE_95_AT_10
    assert status.progress_percentage == 1.0


def test_loop_info_improving():
    info = build_loop_info(_make_session([50, 60, 70]))
    assert info.progress_trend is ProgressTrend.IMPROVING
    assert info.average_improvement == 10.0
    assert info.score_progression == [50, 60, 70]
    assert info.loops_remaining == 22
    assert info.stagnation_detected is False


def test_loop_info_uses_last_five_scores():
    info = build_loop_info(_make_session([10, 20, 30, 40, 50, 60]))
    assert info.score_progression == [20, 30, 40, 50, 60]


def test_loop_info_declining_and_oscillating():
    assert build_loop_info(_make_session([70, 65, 60])).progress_trend is ProgressTrend.DECLINING
    assert build_loop_info(_make_session([70, 75, 70])).progress_trend is ProgressTrend.OSCILLATING


def test_loop_info_first_round():
    info = build_loop_info(_make_session([55]))
    assert info.progress_trend is ProgressTrend.IMPROVING
    assert info.average_improvement == 0.0


def test_loop_info_stagnant():
    stagnation = StagnationAnalysis(is_stagnant=True, recommendation="stuck")
    info = build_loop_info(_make_session([80, 81, 80]), stagnation)
    assert info.progress_trend is ProgressTrend.STAGNANT
    assert info.stagnation_detected is True


def test_termination_info_recommendations():
    termination = TerminationResult(
        should_terminate=True,
        reason="Maximum loops (25) reached without achieving completion criteria",
        failure_rate=0.2,
        critical_issues=["a.py:1 - error"],
        final_assessment="Final Assessment after 25 loops:",
    )
    info = build_termination_info(termination)
    assert info.type is TerminationType.TIMEOUT
    assert info.recommendations[0] == "Focus on the most critical issues identified in the final assessment"
    assert info.critical_issues == ["a.py:1 - error"]


def test_session_metadata():
    metadata = build_session_metadata(_make_session([80], created_at=100.0), now=160.5)
    assert metadata.loop_id == "loop-7"
    assert metadata.total_session_time == 60.5
    assert metadata.session_config == {
        "threshold": 90,
        "maxCycles": 1,
        "judges": ["internal", "peer"],
        "scope": "diff",
    }


def test_camel_case():
    assert camel_case("progress_percentage") == "progressPercentage"
    assert camel_case("score") == "score"


def test_payload_projection():
    info = build_loop_info(_make_session([50, 60]))
    payload = to_payload(info)
    assert payload["progressTrend"] == "improving"
    assert payload["loopsRemaining"] == 23
    assert payload["scoreProgression"] == [50, 60]


def test_payload_keeps_review_shape():
    review = Review(overall=80, verdict=Verdict.REVISE, summary="ok")
    assert to_payload({"gan": review})["gan"]["review"]["summary"] == "ok"
    assert "judge_cards" in to_payload(review)


def test_completion_status_reflects_termination():
    evaluator = CompletionEvaluator()
    completion = evaluator.evaluate_completion(80, 12)
    termination = TerminationResult(
        should_terminate=True,
        reason="Stagnation detected: cosmetic changes only",
        failure_rate=0.0,
    )
    status = build_completion_status(completion, 80, 12, evaluator, termination)
    assert status.is_complete is True
    assert status.reason is CompletionReason.STAGNATION_DETECTED
    assert status.message == "Stagnation detected: cosmetic changes only"
    assert status.progress_percentage == 0.95
