"""Error taxonomy for the audit loop.

Every error carries the category, severity, recoverability and recovery
strategy the caller needs to decide what to do next.
"""


class AuditLoopError(Exception):
    category = "session"
    severity = "medium"
    recoverable = True
    strategy = "user_intervention"

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self):
        return {
            "error": self.message,
            "category": self.category,
            "severity": self.severity,
            "recoverable": self.recoverable,
            "strategy": self.strategy,
            "context": self.context,
        }


class ConfigurationError(AuditLoopError, ValueError):
    category = "configuration"
    severity = "high"
    recoverable = False
    strategy = "abort"

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors), errors=self.errors)


class JudgeError(AuditLoopError, RuntimeError):
    category = "judge"
    severity = "high"
    strategy = "fallback"


class PersistenceError(AuditLoopError):
    category = "filesystem"
    severity = "medium"
    strategy = "skip"


class SessionNotFoundError(AuditLoopError, KeyError):
    severity = "low"

    def __init__(self, session_id):
        super().__init__(f"Session not found: {session_id}", session_id=session_id)
        self.session_id = session_id

    def __str__(self):
        return self.message


class SessionCompleteError(AuditLoopError):
    severity = "low"
    recoverable = False

    def __init__(self, session_id, reason=None):
        detail = f" ({reason})" if reason else ""
        super().__init__(
            f"Session {session_id} is complete{detail}; reset it to start a new loop",
            session_id=session_id,
            reason=reason,
        )
        self.session_id = session_id


class SessionCorruptedError(AuditLoopError):
    severity = "high"
    strategy = "fallback"
