"""Tests for core.orchestrator: the judge is mocked, loop logic is real."""

from unittest.mock import MagicMock

import pytest

from agents.judge import JudgeAgent
from core.errors import ConfigurationError, SessionCompleteError, SessionNotFoundError
from core.orchestrator import AuditEngine, build_engine, validate_session_id
from core.session_store import SessionStore
from core.state import Review, Verdict

_NAMES = [
    "parse", "render", "validate", "compile", "serialize", "tokenize",
    "optimize", "schedule", "dispatch", "encode", "decode", "migrate",
]


def _code(i):
    name = _NAMES[i % len(_NAMES)]
    return f"def {name}(data):\n    return {name}_impl(data, {i})\n"


def _review(score, verdict=Verdict.REVISE, summary="needs work"):
    return Review(overall=score, verdict=verdict, summary=summary)


def _engine(*reviews):
    judge = MagicMock()
    judge.review.side_effect = list(reviews)
    return AuditEngine(judge=judge), judge


def test_first_round_payload():
    engine, judge = _engine(_review(62))
    payload = engine.process_round("s1", _code(0))

    assert payload["thoughtNumber"] == 1
    assert payload["totalThoughts"] == 1
    assert payload["nextThoughtNeeded"] is True
    assert payload["thoughtHistoryLength"] == 1
    assert payload["sessionId"] == "s1"
    assert payload["gan"]["overall"] == 62
    assert payload["gan"]["verdict"] == "revise"
    assert payload["completionStatus"]["isComplete"] is False
    assert payload["completionStatus"]["reason"] == "in_progress"
    assert payload["loopInfo"]["currentLoop"] == 1
    assert payload["sessionMetadata"]["sessionConfig"]["threshold"] == 85
    assert "terminationInfo" not in payload
    judge.review.assert_called_once()


def test_caller_fields_are_echoed():
    engine, _ = _engine(_review(62))
    payload = engine.process_round(
        "s1", _code(0), thought_number=3, total_thoughts=8,
        branches=["alt"], thought_history_length=5,
    )
    assert payload["thoughtNumber"] == 3
    assert payload["totalThoughts"] == 8
    assert payload["branches"] == ["alt"]
    assert payload["thoughtHistoryLength"] == 5


def test_caller_can_stop_the_loop():
    engine, _ = _engine(_review(62))
    assert engine.process_round("s1", _code(0), next_thought_needed=False)["nextThoughtNeeded"] is False


def test_supplied_review_skips_judge():
    engine, judge = _engine()
    review = {"overall": 77, "verdict": "revise", "review": {"summary": "ok", "inline": []}}
    payload = engine.process_round("s1", _code(0), review=review)
    assert payload["gan"]["overall"] == 77
    judge.review.assert_not_called()


def test_invalid_supplied_review():
    engine, _ = _engine()
    with pytest.raises(ConfigurationError, match="invalid review"):
        engine.process_round("s1", _code(0), review={"overall": 180, "verdict": "revise"})


@pytest.mark.parametrize("session_id", ["", "../escape", "a/b", "-lead", "x" * 129, None])
def test_bad_session_ids(session_id):
    with pytest.raises(ConfigurationError):
        validate_session_id(session_id)


def test_empty_code_rejected():
    engine, _ = _engine()
    with pytest.raises(ConfigurationError):
        engine.process_round("s1", "   ")


def test_previous_review_passed_to_judge():
    engine, judge = _engine(_review(50), _review(60))
    engine.process_round("s1", _code(0))
    engine.process_round("s1", _code(1))
    assert judge.review.call_args.kwargs["previous"].overall == 50


def test_tier_completion_stops_loop():
    reviews = [_review(60 + i) for i in range(9)] + [_review(96, Verdict.PASS)]
    engine, _ = _engine(*reviews)
    for i in range(9):
        assert engine.process_round("s1", _code(i))["nextThoughtNeeded"] is True

    payload = engine.process_round("s1", _code(9))
    assert payload["nextThoughtNeeded"] is False
    assert payload["completionStatus"]["isComplete"] is True
    assert payload["completionStatus"]["reason"] == "score_95_at_10"
    assert payload["completionStatus"]["progressPercentage"] == 1.0
    assert "terminationInfo" not in payload
    assert engine.status("s1")["completionReason"] == "score_95_at_10"

    with pytest.raises(SessionCompleteError):
        engine.process_round("s1", _code(10))


def test_stagnation_terminates_at_loop_12():
    reviews = [_review(50 + 3 * i) for i in range(9)] + [_review(80)] * 3
    engine, _ = _engine(*reviews)
    for i in range(9):
        engine.process_round("s1", _code(i))
    stuck = "def solve(data):\n    return sorted(data)\n"
    assert engine.process_round("s1", stuck)["nextThoughtNeeded"] is True
    assert engine.process_round("s1", stuck)["nextThoughtNeeded"] is True

    payload = engine.process_round("s1", stuck)
    assert payload["nextThoughtNeeded"] is False
    assert payload["loopInfo"]["stagnationDetected"] is True
    assert payload["terminationInfo"]["type"] == "stagnation"
    assert payload["completionStatus"]["isComplete"] is True
    assert payload["completionStatus"]["reason"] == "stagnation_detected"
    assert payload["completionStatus"]["progressPercentage"] < 1.0
    first_step = payload["feedback"]["nextSteps"][0]
    assert first_step["action"] == "Break out of stagnation pattern"
    assert first_step["priority"] == "critical"
    assert engine.status("s1")["completionReason"] == "stagnation_detected"


def test_hard_cap_at_25():
    reviews = [_review(40 if i % 2 else 60) for i in range(25)]
    engine, _ = _engine(*reviews)
    for i in range(24):
        assert engine.process_round("s1", _code(i))["nextThoughtNeeded"] is True

    payload = engine.process_round("s1", _code(24))
    assert payload["nextThoughtNeeded"] is False
    assert payload["completionStatus"]["reason"] == "max_loops_reached"
    assert payload["terminationInfo"]["type"] == "timeout"
    assert payload["terminationInfo"]["finalAssessment"].startswith("Final Assessment after 25 loops:")
    assert payload["loopInfo"]["loopsRemaining"] == 0

    with pytest.raises(SessionCompleteError):
        engine.process_round("s1", _code(25))


def test_repeated_rejects_terminate():
    engine, _ = _engine(*[_review(30, Verdict.REJECT, summary=f"broken {i}") for i in range(5)])
    for i in range(4):
        engine.process_round("s1", _code(i))
    payload = engine.process_round("s1", _code(4))
    assert payload["nextThoughtNeeded"] is False
    assert payload["terminationInfo"]["type"] == "failure"
    assert payload["completionStatus"]["isComplete"] is True
    assert payload["completionStatus"]["reason"] == "repeated_failure"
    assert payload["terminationInfo"]["failureRate"] == 1.0
    assert "Loop 5: broken 4" in payload["terminationInfo"]["criticalIssues"]
    assert engine.status("s1")["completionReason"] == "repeated_failure"


def test_judge_failure_uses_fallback_review():
    llm = MagicMock(side_effect=RuntimeError("ANTHROPIC_API_KEY environment variable is not set"))
    engine = AuditEngine(judge=JudgeAgent(llm=llm))
    payload = engine.process_round("s1", _code(0))
    assert payload["gan"]["overall"] == 50
    assert payload["gan"]["judge_cards"][0]["model"] == "fallback"
    assert payload["nextThoughtNeeded"] is True


def test_config_applies_at_creation():
    engine, _ = _engine(_review(60), _review(61))
    engine.process_round("s1", _code(0), config={"threshold": 70, "scope": "workspace"})
    engine.process_round("s1", _code(1), config={"threshold": 99})
    config = engine.status("s1")["config"]
    assert config["threshold"] == 70
    assert config["scope"] == "workspace"
    assert config["maxCycles"] == 1


def test_inline_config_block():
    engine, judge = _engine(_review(60))
    code = '```gan-config\n{"task": "Review the parser"}\n```\n' + _code(0)
    engine.process_round("s1", code)
    assert judge.review.call_args.args[1].task == "Review the parser"


def test_reconfigure():
    engine, _ = _engine(_review(60))
    engine.process_round("s1", _code(0))
    assert engine.reconfigure("s1", {"threshold": 60})["config"]["threshold"] == 60
    with pytest.raises(ConfigurationError):
        engine.reconfigure("s1", {"threshold": -1})


def test_terminate_and_reset():
    engine, _ = _engine(_review(60), _review(70))
    engine.process_round("s1", _code(0))

    status = engine.terminate_session("s1")
    assert status["terminated"] is True
    assert status["completionReason"] == "manual_termination"
    with pytest.raises(SessionCompleteError):
        engine.process_round("s1", _code(1))

    status = engine.reset_session("s1")
    assert status["currentLoop"] == 0
    assert status["isComplete"] is False
    assert engine.process_round("s1", _code(1))["thoughtNumber"] == 1


def test_status_of_unknown_session():
    engine, _ = _engine()
    with pytest.raises(SessionNotFoundError):
        engine.status("missing")


def test_status_reports_scores():
    engine, _ = _engine(_review(60), _review(70))
    engine.process_round("s1", _code(0))
    engine.process_round("s1", _code(1))
    status = engine.status("s1")
    assert status["scores"] == [60, 70]
    assert status["lastReview"]["overall"] == 70
    assert status["loopInfo"]["averageImprovement"] == 10.0


def test_sessions_are_isolated():
    engine, _ = _engine(_review(60), _review(70), _review(80))
    engine.process_round("a", _code(0))
    engine.process_round("a", _code(1))
    assert engine.process_round("b", _code(2))["thoughtNumber"] == 1


def test_file_backed_engine_survives_restart(tmp_path):
    engine = build_engine(str(tmp_path))
    engine.judge = MagicMock()
    engine.judge.review.return_value = _review(64)
    engine.process_round("s1", _code(0))

    restarted = build_engine(str(tmp_path))
    status = restarted.status("s1")
    assert status["currentLoop"] == 1
    assert status["scores"] == [64]


@pytest.mark.parametrize("fields", [
    {"thought_number": "abc"},
    {"thought_number": 0},
    {"total_thoughts": 2.5},
    {"thought_history_length": -1},
    {"next_thought_needed": "yes"},
    {"branches": "alt"},
    {"loop_id": 7},
    {"review": ["not", "a", "review"]},
])
def test_bad_round_fields_rejected_before_recording(fields):
    engine, judge = _engine(_review(62))
    with pytest.raises(ConfigurationError):
        engine.process_round("s1", _code(0), **fields)
    judge.review.assert_not_called()
    with pytest.raises(SessionNotFoundError):
        engine.status("s1")


def test_bad_fields_do_not_count_a_loop_on_existing_session():
    engine, _ = _engine(_review(62), _review(64))
    engine.process_round("s1", _code(0))
    with pytest.raises(ConfigurationError, match="totalThoughts"):
        engine.process_round("s1", _code(1), total_thoughts="3")
    assert engine.status("s1")["currentLoop"] == 1
    assert engine.process_round("s1", _code(1))["thoughtNumber"] == 2


def test_session_mid_round_survives_eviction_pressure():
    store = SessionStore(max_sessions=1)
    judge = MagicMock()

    def review_while_another_session_arrives(code, config, previous=None):
        store.get_or_create("b")
        return _review(70)

    judge.review.side_effect = review_while_another_session_arrives
    engine = AuditEngine(store=store, judge=judge)

    payload = engine.process_round("a", _code(0))
    assert payload["thoughtNumber"] == 1
    assert engine.status("a")["scores"] == [70]
