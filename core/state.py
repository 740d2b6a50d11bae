"""Session state and judge review models shared across the engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Verdict(str, Enum):
    PASS = "pass"
    REVISE = "revise"
    REJECT = "reject"


class Scope(str, Enum):
    DIFF = "diff"
    PATHS = "paths"
    WORKSPACE = "workspace"


class CompletionReason(str, Enum):
    SCORE_95_AT_10 = "score_95_at_10"
    SCORE_90_AT_15 = "score_90_at_15"
    SCORE_85_AT_20 = "score_85_at_20"
    MAX_LOOPS_REACHED = "max_loops_reached"
    STAGNATION_DETECTED = "stagnation_detected"
    REPEATED_FAILURE = "repeated_failure"
    MANUAL_TERMINATION = "manual_termination"
    IN_PROGRESS = "in_progress"


class TerminationType(str, Enum):
    COMPLETION = "completion"
    STAGNATION = "stagnation"
    TIMEOUT = "timeout"
    FAILURE = "failure"


class ProgressTrend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STAGNANT = "stagnant"
    OSCILLATING = "oscillating"


class IssueCategory(str, Enum):
    SECURITY = "security"
    PERFORMANCE = "performance"
    STYLE = "style"
    LOGIC = "logic"
    ERROR_HANDLING = "error_handling"
    TESTING = "testing"
    DOCUMENTATION = "documentation"
    ARCHITECTURE = "architecture"
    MAINTAINABILITY = "maintainability"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Severity(str, Enum):
    BLOCKER = "blocker"
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class CriticalIssueType(str, Enum):
    SECURITY_VULNERABILITY = "security_vulnerability"
    LOGIC_ERROR = "logic_error"
    PERFORMANCE_BOTTLENECK = "performance_bottleneck"
    COMPATIBILITY_ISSUE = "compatibility_issue"
    DATA_CORRUPTION_RISK = "data_corruption_risk"
    RESOURCE_LEAK = "resource_leak"
    INFINITE_LOOP = "infinite_loop"
    NULL_POINTER = "null_pointer"
    RACE_CONDITION = "race_condition"
    DEADLOCK_RISK = "deadlock_risk"


PRIORITY_ORDER = {Priority.CRITICAL: 0, Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}
SEVERITY_ORDER = {Severity.BLOCKER: 0, Severity.CRITICAL: 1, Severity.MAJOR: 2, Severity.MINOR: 3}


@dataclass(frozen=True)
class SessionConfig:
    task: str
    scope: Scope = Scope.DIFF
    threshold: int = 85
    max_cycles: int = 1
    candidates: int = 1
    judges: tuple = ("internal",)
    apply_fixes: bool = False
    paths: tuple = ()

    def to_dict(self) -> dict:
        return {
            "task": self.task,
            "scope": self.scope.value,
            "threshold": self.threshold,
            "max_cycles": self.max_cycles,
            "candidates": self.candidates,
            "judges": list(self.judges),
            "apply_fixes": self.apply_fixes,
            "paths": list(self.paths),
        }

    @classmethod
    def from_dict(cls, data: dict) -> SessionConfig:
        return cls(
            task=data["task"],
            scope=Scope(data.get("scope", "diff")),
            threshold=int(data.get("threshold", 85)),
            max_cycles=int(data.get("max_cycles", 1)),
            candidates=int(data.get("candidates", 1)),
            judges=tuple(data.get("judges", ("internal",))),
            apply_fixes=bool(data.get("apply_fixes", False)),
            paths=tuple(data.get("paths", ())),
        )


@dataclass
class InlineComment:
    path: str
    line: int | None
    comment: str

    def located(self):
        where = f"{self.path}:{self.line}" if self.line is not None else self.path
        return f"{where} - {self.comment}"


@dataclass
class Dimension:
    name: str
    score: float


@dataclass
class JudgeCard:
    model: str
    score: float
    notes: str = ""


@dataclass
class Review:
    """Parsed judge verdict. Consumed by the engine, never mutated by it."""

    overall: float
    verdict: Verdict
    summary: str = ""
    dimensions: list[Dimension] = field(default_factory=list)
    inline: list[InlineComment] = field(default_factory=list)
    citations: list[str] = field(default_factory=list)
    iterations: int = 1
    judge_cards: list[JudgeCard] = field(default_factory=list)

    @property
    def is_fallback(self) -> bool:
        return any(card.model.endswith("fallback") for card in self.judge_cards)

    def to_dict(self) -> dict:
        return {
            "overall": self.overall,
            "dimensions": [{"name": d.name, "score": d.score} for d in self.dimensions],
            "verdict": self.verdict.value,
            "review": {
                "summary": self.summary,
                "inline": [
                    {"path": c.path, "line": c.line, "comment": c.comment}
                    for c in self.inline
                ],
                "citations": list(self.citations),
            },
            "iterations": self.iterations,
            "judge_cards": [
                {"model": j.model, "score": j.score, "notes": j.notes}
                for j in self.judge_cards
            ],
        }

    @classmethod
    def from_dict(cls, data) -> Review:
        """Validate a judge reply shaped like ``to_dict()`` output.

        Raises:
            ValueError: If required fields are missing or out of range.
        """
        if not isinstance(data, dict):
            raise ValueError("Review must be a JSON object")

        overall = data.get("overall")
        if isinstance(overall, bool) or not isinstance(overall, (int, float)):
            raise ValueError("Review 'overall' must be a number")
        if not 0 <= overall <= 100:
            raise ValueError(f"Review 'overall' out of range: {overall}")

        try:
            verdict = Verdict(str(data.get("verdict", "")).lower())
        except ValueError:
            raise ValueError(f"Unknown verdict: {data.get('verdict')!r}") from None

        body = data.get("review") or {}
        if not isinstance(body, dict):
            raise ValueError("Review 'review' must be an object")

        dimensions = []
        for item in data.get("dimensions") or []:
            if isinstance(item, dict) and "name" in item and "score" in item:
                dimensions.append(Dimension(name=str(item["name"]), score=float(item["score"])))

        inline = []
        for item in body.get("inline") or []:
            if isinstance(item, dict):
                line = item.get("line")
                inline.append(InlineComment(
                    path=str(item.get("path", "")),
                    line=line if isinstance(line, int) else None,
                    comment=str(item.get("comment", "")),
                ))

        cards = []
        for item in data.get("judge_cards") or []:
            if isinstance(item, dict):
                cards.append(JudgeCard(
                    model=str(item.get("model", "unknown")),
                    score=float(item.get("score", overall)),
                    notes=str(item.get("notes", "")),
                ))

        return cls(
            overall=overall,
            verdict=verdict,
            summary=str(body.get("summary", "")),
            dimensions=dimensions,
            inline=inline,
            citations=[str(c) for c in body.get("citations") or []],
            iterations=int(data.get("iterations", 1) or 1),
            judge_cards=cards,
        )


@dataclass
class IterationRecord:
    thought_number: int
    code: str
    review: Review
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "thought_number": self.thought_number,
            "code": self.code,
            "review": self.review.to_dict(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> IterationRecord:
        return cls(
            thought_number=int(data["thought_number"]),
            code=data["code"],
            review=Review.from_dict(data["review"]),
            timestamp=float(data["timestamp"]),
        )


@dataclass
class HistoryEntry:
    thought_number: int
    review: Review
    config: SessionConfig
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "thought_number": self.thought_number,
            "review": self.review.to_dict(),
            "config": self.config.to_dict(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> HistoryEntry:
        return cls(
            thought_number=int(data["thought_number"]),
            review=Review.from_dict(data["review"]),
            config=SessionConfig.from_dict(data["config"]),
            timestamp=float(data["timestamp"]),
        )


@dataclass
class SessionState:
    id: str
    config: SessionConfig
    created_at: float
    updated_at: float
    loop_id: str | None = None
    history: list[HistoryEntry] = field(default_factory=list)
    iterations: list[IterationRecord] = field(default_factory=list)
    current_loop: int = 0              # always len(iterations)
    is_complete: bool = False
    completion_reason: str | None = None
    terminated: bool = False
    last_review: Review | None = None

    @property
    def scores(self) -> list[float]:
        return [entry.review.overall for entry in self.history]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "loop_id": self.loop_id,
            "config": self.config.to_dict(),
            "history": [h.to_dict() for h in self.history],
            "iterations": [i.to_dict() for i in self.iterations],
            "current_loop": self.current_loop,
            "is_complete": self.is_complete,
            "completion_reason": self.completion_reason,
            "terminated": self.terminated,
            "last_review": self.last_review.to_dict() if self.last_review else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SessionState:
        iterations = [IterationRecord.from_dict(i) for i in data["iterations"]]
        last = data.get("last_review")
        return cls(
            id=data["id"],
            loop_id=data.get("loop_id"),
            config=SessionConfig.from_dict(data["config"]),
            history=[HistoryEntry.from_dict(h) for h in data["history"]],
            iterations=iterations,
            current_loop=int(data["current_loop"]),
            is_complete=bool(data["is_complete"]),
            completion_reason=data.get("completion_reason"),
            terminated=bool(data.get("terminated", False)),
            last_review=Review.from_dict(last) if last else None,
            created_at=float(data["created_at"]),
            updated_at=float(data["updated_at"]),
        )
