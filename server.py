#!/usr/bin/env python3
"""auditloop - JSON tool endpoint exposing the audit engine over HTTP."""

import logging
import os

from flask import Flask, jsonify, request

from core.errors import (
    AuditLoopError,
    ConfigurationError,
    SessionCompleteError,
    SessionNotFoundError,
)
from core.orchestrator import build_engine

logger = logging.getLogger(__name__)

# request body key -> process_round keyword
_ROUND_FIELDS = {
    "review": "review",
    "thoughtNumber": "thought_number",
    "totalThoughts": "total_thoughts",
    "nextThoughtNeeded": "next_thought_needed",
    "branches": "branches",
    "thoughtHistoryLength": "thought_history_length",
    "loopId": "loop_id",
    "config": "config",
}


def create_app(engine=None):
    """Build the Flask app around one engine instance.

    With no engine given, sessions persist under the configured state dir.
    """
    app = Flask(__name__)
    app.config["ENGINE"] = engine or build_engine()

    def _engine():
        return app.config["ENGINE"]

    @app.errorhandler(ConfigurationError)
    def _bad_request(e):
        return jsonify(e.to_dict()), 400

    @app.errorhandler(SessionNotFoundError)
    def _not_found(e):
        return jsonify(e.to_dict()), 404

    @app.errorhandler(SessionCompleteError)
    def _conflict(e):
        return jsonify(e.to_dict()), 409

    @app.errorhandler(AuditLoopError)
    def _server_error(e):
        logger.error("Unhandled engine error: %s", e)
        return jsonify(e.to_dict()), 500

    @app.route("/api/health")
    def api_health():
        return jsonify({"status": "ok"})

    @app.route("/api/audit", methods=["POST"])
    def api_audit():
        """Run one audit round for a session."""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400

        session_id = data.get("sessionId")
        code = data.get("code")
        if not session_id:
            return jsonify({"error": "Missing sessionId"}), 400
        if not isinstance(code, str) or not code.strip():
            return jsonify({"error": "Missing code"}), 400

        kwargs = {arg: data[key] for key, arg in _ROUND_FIELDS.items() if key in data}
        return jsonify(_engine().process_round(session_id, code, **kwargs))

    @app.route("/api/sessions/<session_id>")
    def api_session(session_id):
        return jsonify(_engine().status(session_id))

    @app.route("/api/sessions/<session_id>/terminate", methods=["POST"])
    def api_terminate(session_id):
        return jsonify(_engine().terminate_session(session_id))

    @app.route("/api/sessions/<session_id>/reset", methods=["POST"])
    def api_reset(session_id):
        return jsonify(_engine().reset_session(session_id))

    @app.route("/api/sessions/<session_id>/config", methods=["POST"])
    def api_reconfigure(session_id):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400
        return jsonify(_engine().reconfigure(session_id, data))

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", 5001))
    print(f"auditloop running at http://localhost:{port}")
    create_app().run(debug=False, port=port)
