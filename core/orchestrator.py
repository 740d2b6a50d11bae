"""Audit engine: one judged round per call, with the stop/continue decision."""

import logging
import re
import time

from agents.judge import JudgeAgent
from config.session_config import build_session_config, config_from_request
from core.errors import ConfigurationError, SessionCompleteError
from core.payload import camel_case, to_payload
from core.quality import CompletionEvaluator
from core.session_store import SessionStore
from core.stagnation import StagnationDetector
from core.state import CompletionReason, Review
from core.termination import TerminationPolicy
from feedback.response import (
    TERMINATION_REASONS,
    build_completion_status,
    build_loop_info,
    build_session_metadata,
    build_termination_info,
)
from feedback.synthesizer import FeedbackSynthesizer
from utils.persistence import JsonSessionPersistence

logger = logging.getLogger(__name__)

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def validate_session_id(session_id):
    if not isinstance(session_id, str) or not _SESSION_ID_RE.match(session_id):
        raise ConfigurationError(
            "session id must be 1-128 characters of letters, digits, '.', '_' or '-'"
        )


def _is_count(value, minimum):
    return isinstance(value, int) and not isinstance(value, bool) and value >= minimum


def validate_round_fields(thought_number=None, total_thoughts=None, next_thought_needed=True,
                          branches=(), thought_history_length=None, loop_id=None):
    """Check the caller's pass-through fields before anything is recorded."""
    errors = []
    for name, value, minimum in (
        ("thoughtNumber", thought_number, 1),
        ("totalThoughts", total_thoughts, 1),
        ("thoughtHistoryLength", thought_history_length, 0),
    ):
        if value is not None and not _is_count(value, minimum):
            errors.append(f"{name} must be an integer >= {minimum}")
    if not isinstance(next_thought_needed, bool):
        errors.append("nextThoughtNeeded must be a boolean")
    if not isinstance(branches, (list, tuple)):
        errors.append("branches must be a list")
    if loop_id is not None and not isinstance(loop_id, str):
        errors.append("loopId must be a string")
    if errors:
        raise ConfigurationError(errors)


def build_engine(state_dir=None):
    """Engine backed by file persistence under ``state_dir``."""
    return AuditEngine(store=SessionStore(persistence=JsonSessionPersistence(state_dir)))


class AuditEngine:
    """Runs one round per call: judge, record, evaluate, decide, explain.

    Never loops on its own. The caller reads ``nextThoughtNeeded`` from the
    returned payload and decides whether to submit another candidate.
    Everything is held on the instance, so tests build isolated engines.
    """

    def __init__(self, store=None, judge=None, evaluator=None, detector=None,
                 policy=None, synthesizer=None, clock=time.time):
        self.store = store or SessionStore(clock=clock)
        self.judge = judge or JudgeAgent()
        self.evaluator = evaluator or CompletionEvaluator()
        self.detector = detector or StagnationDetector()
        self.policy = policy or TerminationPolicy(hard_max_loops=self.evaluator.hard_max_loops)
        self.synthesizer = synthesizer or FeedbackSynthesizer()
        self._clock = clock

    def process_round(self, session_id, code, *, review=None, thought_number=None,
                      total_thoughts=None, next_thought_needed=True, branches=(),
                      thought_history_length=None, loop_id=None, config=None) -> dict:
        """Run one round for ``session_id`` and return the response payload.

        ``review`` skips the judge call when the caller already has a verdict
        (a Review or its dict form). ``config`` only applies when the session
        is created; it wins over an inline gan-config block in ``code``.

        Raises:
            ConfigurationError: bad session id, candidate, config, review or
                pass-through field. Nothing is recorded.
            SessionCompleteError: the session is complete or terminated.
        """
        validate_session_id(session_id)
        if not isinstance(code, str) or not code.strip():
            raise ConfigurationError("code must be a non-empty string")
        validate_round_fields(thought_number, total_thoughts, next_thought_needed,
                              branches, thought_history_length, loop_id)
        session_config = config_from_request(code, config)
        if isinstance(review, dict):
            try:
                review = Review.from_dict(review)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"invalid review: {e}") from e
        elif review is not None and not isinstance(review, Review):
            raise ConfigurationError("invalid review: expected a JSON object")

        with self.store.lock(session_id):
            session = self.store.get_or_create(session_id, loop_id=loop_id, config=session_config)
            if session.is_complete:
                raise SessionCompleteError(session_id, session.completion_reason)

            if review is None:
                review = self.judge.review(code, session.config, previous=session.last_review)
            if review.is_fallback:
                logger.warning("Session %s: round scored by fallback review", session_id)

            session = self.store.append_iteration(session_id, code, review, thought_number)
            loop = session.current_loop

            completion = self.evaluator.evaluate_completion(review.overall, loop)
            stagnation = self.detector.detect_stagnation(session.iterations, loop)
            termination = self.policy.should_terminate(session, stagnation)

            if completion.is_complete:
                self.store.mark_complete(session_id, completion.reason)
            elif termination.should_terminate:
                self.store.mark_complete(session_id, TERMINATION_REASONS[termination.termination_type])

            feedback = self.synthesizer.build_structured_feedback(
                review, session, stagnation, termination,
            )
            keep_going = (
                next_thought_needed
                and completion.next_thought_needed
                and not termination.should_terminate
            )
            number = thought_number or loop
            payload = {
                "thoughtNumber": number,
                "totalThoughts": max(total_thoughts or number, number),
                "nextThoughtNeeded": keep_going,
                "branches": list(branches),
                "thoughtHistoryLength": loop if thought_history_length is None else thought_history_length,
                "sessionId": session_id,
                "gan": review.to_dict(),
                "feedback": to_payload(feedback),
                "completionStatus": to_payload(
                    build_completion_status(completion, review.overall, loop, self.evaluator, termination)
                ),
                "loopInfo": to_payload(
                    build_loop_info(session, stagnation, self.evaluator.hard_max_loops)
                ),
                "sessionMetadata": to_payload(build_session_metadata(session, now=self._clock())),
            }
            if termination.should_terminate:
                payload["terminationInfo"] = to_payload(build_termination_info(termination))

        logger.info(
            "Session %s loop %d: score %s, verdict %s, %s",
            session_id, loop, review.overall, review.verdict.value,
            "continue" if keep_going else "stop",
        )
        return payload

    def status(self, session_id) -> dict:
        """Consistent read-only view of a session. Raises SessionNotFoundError."""
        validate_session_id(session_id)
        session = self.store.snapshot(session_id)
        stagnation = self.detector.detect_stagnation(session.iterations, session.current_loop)
        return {
            "sessionId": session.id,
            "loopId": session.loop_id,
            "currentLoop": session.current_loop,
            "isComplete": session.is_complete,
            "completionReason": session.completion_reason,
            "terminated": session.terminated,
            "scores": session.scores,
            "lastReview": session.last_review.to_dict() if session.last_review else None,
            "config": {camel_case(k): v for k, v in session.config.to_dict().items()},
            "loopInfo": to_payload(build_loop_info(session, stagnation, self.evaluator.hard_max_loops)),
            "sessionMetadata": to_payload(build_session_metadata(session, now=self._clock())),
        }

    def terminate_session(self, session_id, reason=CompletionReason.MANUAL_TERMINATION) -> dict:
        validate_session_id(session_id)
        self.store.terminate(session_id, reason)
        return self.status(session_id)

    def reset_session(self, session_id) -> dict:
        validate_session_id(session_id)
        self.store.reset(session_id)
        return self.status(session_id)

    def reconfigure(self, session_id, overrides) -> dict:
        """Replace a session's config with ``overrides`` laid over the current one."""
        validate_session_id(session_id)
        with self.store.lock(session_id):
            current = self.store.get(session_id).config
            self.store.replace_config(session_id, build_session_config(overrides, base=current))
        return self.status(session_id)

    def cleanup(self):
        return self.store.cleanup()
