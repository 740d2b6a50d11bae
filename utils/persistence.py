"""File-backed JSON persistence for session state.

One ``<session_id>.json`` file per session under the state directory.
"""

import json
import logging
import os
import tempfile
import time

from config.defaults import DEFAULTS
from core.errors import PersistenceError, SessionCorruptedError

logger = logging.getLogger(__name__)


class JsonSessionPersistence:
    def __init__(self, root=None):
        self.root = os.path.realpath(root or DEFAULTS["state_dir"])

    def path_for(self, session_id):
        resolved = os.path.realpath(os.path.join(self.root, f"{session_id}.json"))
        if not resolved.startswith(self.root + os.sep):
            raise ValueError(f"Session id escapes state directory: {session_id}")
        return resolved

    def load(self, session_id):
        """Return the stored dict for a session, or None if nothing is stored.

        Raises:
            SessionCorruptedError: If the file exists but is not a JSON object.
        """
        path = self.path_for(session_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SessionCorruptedError(
                f"Cannot read stored session {session_id}: {e}", session_id=session_id
            ) from e
        if not isinstance(data, dict):
            raise SessionCorruptedError(
                f"Stored session {session_id} is not an object", session_id=session_id
            )
        return data

    def save(self, session):
        """Atomically write a session; a crash mid-write leaves the old file intact."""
        path = self.path_for(session.id)
        try:
            os.makedirs(self.root, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(session.to_dict(), f, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error("Failed to persist session %s: %s", session.id, e)
            raise PersistenceError(
                f"Failed to persist session {session.id}: {e}", session_id=session.id
            ) from e
        return path

    def delete(self, session_id):
        path = self.path_for(session_id)
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        return True

    def list_ids(self):
        if not os.path.isdir(self.root):
            return []
        return sorted(
            name[:-len(".json")]
            for name in os.listdir(self.root)
            if name.endswith(".json") and not name.startswith(".")
        )

    def cleanup(self, max_age=None, now=None):
        """Delete session files untouched for longer than ``max_age`` seconds.

        Returns the ids that were removed.
        """
        max_age = DEFAULTS["session_ttl"] if max_age is None else max_age
        now = time.time() if now is None else now
        removed = []
        for session_id in self.list_ids():
            path = self.path_for(session_id)
            try:
                age = now - os.path.getmtime(path)
            except FileNotFoundError:
                continue
            if age > max_age:
                self.delete(session_id)
                removed.append(session_id)
        if removed:
            logger.warning("Removed %d stale session file(s)", len(removed))
        return removed
