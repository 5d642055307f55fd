"""
JSON extraction and repair for model output.

Small local models asked for JSON often wrap it in prose or code fences,
or emit near-JSON: trailing commas, single quotes, bare keys, Python
literals. parse_json_object recovers a JSON object from such text when it
reasonably can and reports why when it cannot.
"""

import json
import re
from typing import Any

MAX_REPAIR_ROUNDS = 3

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

# Applied in order, once per round
_REPAIRS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"//[^\n]*$", re.MULTILINE), ""),
    (re.compile(r"/\*[\s\S]*?\*/"), ""),
    (re.compile(r",\s*([}\]])"), r"\1"),
    (re.compile(r"([{,])\s*([A-Za-z_][A-Za-z0-9_]*)\s*:"), r'\1"\2":'),
    (re.compile(r"\bTrue\b"), "true"),
    (re.compile(r"\bFalse\b"), "false"),
    (re.compile(r"\bNone\b"), "null"),
)


def extract_json_object(text: str) -> str | None:
    """
    Pull the most likely JSON object out of mixed text.

    A fenced code block whose body starts with ``{`` wins; otherwise the
    span from the first ``{`` to the last ``}``.
    """
    if not text or not text.strip():
        return None

    for match in _FENCED_BLOCK.finditer(text):
        body = match.group(1).strip()
        if body.startswith("{"):
            return body

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return None
    return text[start : end + 1]


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def repair_json(text: str) -> str | None:
    """
    Try to turn near-JSON into JSON.

    Returns:
        Text that json.loads accepts, or None
    """
    if not text:
        return None

    for _ in range(MAX_REPAIR_ROUNDS):
        if _loads(text) is not None:
            return text

        repaired = text
        if '"' not in repaired and "'" in repaired:
            repaired = repaired.replace("'", '"')
        for pattern, replacement in _REPAIRS:
            repaired = pattern.sub(replacement, repaired)

        if repaired == text:
            break
        text = repaired

    return text if _loads(text) is not None else None


def parse_json_object(text: str) -> tuple[dict[str, Any] | None, str | None]:
    """
    Parse a JSON object out of model output.

    Returns:
        (object, None) on success, (None, reason) on failure
    """
    if not text or not text.strip():
        return None, "Empty response"

    candidates = [text.strip()]
    extracted = extract_json_object(text)
    if extracted and extracted != candidates[0]:
        candidates.append(extracted)

    error = "No valid JSON object found in response"
    for candidate in candidates:
        repaired = repair_json(candidate)
        if repaired is None:
            continue
        parsed = json.loads(repaired)
        if isinstance(parsed, dict):
            return parsed, None
        error = f"Expected a JSON object, got {type(parsed).__name__}"

    return None, error
