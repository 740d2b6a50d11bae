"""Claude API client used by the judge, plus JSON recovery for its replies."""

import json
import logging
import os
import re
import time

import anthropic

from config.defaults import DEFAULTS

logger = logging.getLogger(__name__)

MODEL = DEFAULTS["model"]
MAX_TOKENS = DEFAULTS["max_tokens"]

_FENCE_RE = re.compile(r"^```\w*\n?|\n?```$")


def get_client():
    """Return an Anthropic client. Raises if no API key is set."""
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise RuntimeError(
            "ANTHROPIC_API_KEY environment variable is not set. "
            "Get a key at https://console.anthropic.com/ and run:\n"
            "  export ANTHROPIC_API_KEY='your-key-here'"
        )
    return anthropic.Anthropic(api_key=api_key)


def extract_json(text):
    """Pull a JSON value out of a model reply.

    Tries, in order: the whole text with markdown fences stripped, the widest
    ``{...}`` span, the widest ``[...]`` span. Returns None if nothing parses.
    """
    if not text:
        return None
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start = cleaned.find(opener)
        end = cleaned.rfind(closer)
        if start == -1 or end <= start:
            continue
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            continue
    return None


def call_llm(system_prompt, user_message, response_format=None, retries=None):
    """Call Claude with optional structured JSON output.

    Args:
        system_prompt: System prompt string.
        user_message: User message string.
        response_format: If "json", appends an instruction to return valid JSON
                         and returns the parsed value (or the raw text if it
                         cannot be parsed).
        retries: Attempts before giving up on API errors.

    Returns:
        Raw text string, or parsed dict/list if response_format="json".
    """
    client = get_client()
    attempts = retries or DEFAULTS["judge_retries"]

    if response_format == "json":
        system_prompt = system_prompt + "\n\nIMPORTANT: Respond ONLY with valid JSON. No markdown fences, no commentary."

    for attempt in range(attempts):
        try:
            response = client.messages.create(
                model=MODEL,
                max_tokens=MAX_TOKENS,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            )
            text = "".join(
                block.text for block in response.content if getattr(block, "type", "") == "text"
            )
            if response.stop_reason == "max_tokens":
                logger.warning("Judge reply hit the token limit and may be truncated")

            if response_format == "json":
                parsed = extract_json(text)
                return parsed if parsed is not None else text
            return text

        except anthropic.APIError as e:
            if attempt + 1 < attempts:
                logger.warning("Claude API error (attempt %d/%d): %s", attempt + 1, attempts, e)
                time.sleep(2)
                continue
            raise
