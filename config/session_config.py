"""Session configuration: inline gan-config extraction, validation, defaults."""

import json
import logging
import re

from config.defaults import CONFIG_CONSTRAINTS, DEFAULT_SESSION_CONFIG
from core.errors import ConfigurationError
from core.state import Scope, SessionConfig
from utils.llm import extract_json

logger = logging.getLogger(__name__)

_GAN_CONFIG_RE = re.compile(r"```gan-config\s*\n(.*?)\n```", re.DOTALL | re.IGNORECASE)

# camelCase keys accepted from tool callers
_KEY_ALIASES = {
    "maxCycles": "max_cycles",
    "applyFixes": "apply_fixes",
}


def extract_inline_config(text):
    """Return the first ```gan-config JSON block in text as a dict, or None."""
    if not text:
        return None
    match = _GAN_CONFIG_RE.search(text)
    if not match:
        return None
    raw = match.group(1).strip()
    if not raw:
        return None
    data = extract_json(raw)
    if not isinstance(data, dict):
        raise ConfigurationError(f"gan-config block is not a JSON object: {raw[:80]}")
    return data


def build_session_config(overrides=None, base=None):
    """Overlay caller overrides on the defaults and validate the result.

    Raises:
        ConfigurationError: listing every invalid field.
    """
    values = dict(DEFAULT_SESSION_CONFIG)
    if base is not None:
        values.update(base.to_dict())

    for key, value in (overrides or {}).items():
        values[_KEY_ALIASES.get(key, key)] = value

    errors = []

    task = values.get("task")
    if not isinstance(task, str) or not task.strip():
        errors.append("task must be a non-empty string")

    try:
        scope = Scope(values.get("scope"))
    except ValueError:
        errors.append("scope must be one of: diff, paths, workspace")
        scope = Scope.DIFF

    for key, (low, high) in CONFIG_CONSTRAINTS.items():
        value = values.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not low <= value <= high:
            errors.append(f"{key} must be a number between {low} and {high}")

    judges = values.get("judges")
    if (not isinstance(judges, (list, tuple)) or not judges
            or not all(isinstance(j, str) and j.strip() for j in judges)):
        errors.append("judges must be a non-empty list of strings")

    paths = values.get("paths") or []
    if not isinstance(paths, (list, tuple)) or not all(isinstance(p, str) for p in paths):
        errors.append("paths must be a list of strings")
        paths = []

    if not isinstance(values.get("apply_fixes"), bool):
        errors.append("apply_fixes must be a boolean")

    if errors:
        raise ConfigurationError(errors)

    paths = tuple(p.strip() for p in paths if p.strip())
    if scope is Scope.PATHS and not paths:
        logger.warning('Scope is "paths" but no paths provided, switching to "workspace"')
        scope = Scope.WORKSPACE

    return SessionConfig(
        task=task.strip(),
        scope=scope,
        threshold=int(values["threshold"]),
        max_cycles=int(values["max_cycles"]),
        candidates=int(values["candidates"]),
        judges=tuple(j.strip() for j in judges),
        apply_fixes=values["apply_fixes"],
        paths=paths,
    )


def config_from_request(code, explicit=None):
    """Explicit caller config wins; otherwise use an inline gan-config block."""
    if explicit:
        if isinstance(explicit, str):
            try:
                explicit = json.loads(explicit)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"config is not valid JSON: {e}") from e
        if not isinstance(explicit, dict):
            raise ConfigurationError("config must be a JSON object")
        return build_session_config(explicit)
    return build_session_config(extract_inline_config(code))
