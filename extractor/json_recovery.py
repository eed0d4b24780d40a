"""
Recover event objects from model output that should be a JSON array.

Model responses may wrap the array in a fenced code block, add commentary
around it, or stop mid-object when the output budget runs out. Parsing is
a fixed sequence of strategies, each a pure function returning a result or
None; later strategies only run when earlier ones yield nothing.
"""
import json
import logging
import re
from typing import Any, Callable, List, Optional, Tuple

from processor.errors import ExtractionParseError

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r'```(?:json)?\s*([\s\S]*?)\s*```', re.IGNORECASE)
_TRAILING_COMMA_OBJECT = re.compile(r',\s*}')
_TRAILING_COMMA_ARRAY = re.compile(r',\s*]')

ARRAY_FIELDS = ('events', 'data')


def parse_event_array(raw_text: str) -> List[dict]:
    """
    Extract a list of JSON objects from an untrusted model response.

    Args:
        raw_text: Text that is supposed to contain a JSON array of events

    Returns:
        List of dicts (possibly fewer than the text described, never
        fabricated)

    Raises:
        ExtractionParseError: If no strategy recovers anything
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise ExtractionParseError("Extraction response is empty")

    fenced = _from_fenced_block(raw_text)
    candidate = fenced
    if candidate is None:
        wrapped = _from_wrapping_object(raw_text)
        if wrapped is not None:
            return _objects_only(wrapped)
        candidate = _from_bracket_span(raw_text)
    if candidate is None:
        candidate = raw_text
    cleaned = _clean_array_text(candidate)

    parsed, parse_error = _parse_direct(cleaned)
    if parsed is not None:
        return _objects_only(parsed)

    # Scans read to the end of the response: after truncation the last "]"
    # can sit inside an earlier object
    tail = _repair_trailing_commas(
        _from_first_bracket(fenced if fenced is not None else raw_text)
    )
    recoveries: Tuple[Callable[[str], Optional[List[dict]]], ...] = (
        _scan_balanced_objects,
        _scan_flat_objects,
    )
    for recover in recoveries:
        recovered = recover(tail)
        if recovered:
            logger.warning(
                f"Recovered {len(recovered)} events from malformed JSON "
                f"using {recover.__name__}"
            )
            return recovered

    raise ExtractionParseError(
        f"Could not recover any events from response: {parse_error}"
    )


def _from_fenced_block(text: str) -> Optional[str]:
    for match in _FENCED_BLOCK.finditer(text):
        content = match.group(1).strip()
        if content.startswith('['):
            return content
    return None


def _from_wrapping_object(text: str) -> Optional[Any]:
    """Handle responses shaped like {"events": [...]} or {"data": [...]}."""
    stripped = text.strip()
    if not stripped.startswith('{'):
        return None

    try:
        value = json.loads(stripped)
    except json.JSONDecodeError:
        return None

    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        for key in ARRAY_FIELDS:
            if isinstance(value.get(key), list):
                return value[key]
    return None


def _from_bracket_span(text: str) -> Optional[str]:
    start = text.find('[')
    end = text.rfind(']')
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def _clean_array_text(text: str) -> str:
    """Trim to the outer brackets and repair trailing commas."""
    start = text.find('[')
    if start != -1:
        text = text[start:]
    end = text.rfind(']')
    if end != -1:
        text = text[:end + 1]

    return _repair_trailing_commas(text)


def _from_first_bracket(text: str) -> str:
    start = text.find('[')
    return text[start:] if start != -1 else text


def _repair_trailing_commas(text: str) -> str:
    text = _TRAILING_COMMA_OBJECT.sub('}', text)
    text = _TRAILING_COMMA_ARRAY.sub(']', text)
    return text.strip()


def _parse_direct(text: str) -> Tuple[Optional[list], str]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        return None, str(e)

    if isinstance(value, list):
        return value, ''
    return None, f"Expected a JSON array, got {type(value).__name__}"


def _scan_balanced_objects(text: str) -> Optional[List[dict]]:
    """
    Walk the text tracking string state and brace depth.

    Every time the depth returns to zero the accumulated object is parsed
    on its own; objects that do not parse are dropped and scanning
    continues, so a truncated tail only costs the last object.
    """
    objects = []
    depth = 0
    in_string = False
    escaped = False
    start = None

    for index, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if char == '\\':
            escaped = in_string
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char == '{':
            if depth == 0:
                start = index
            depth += 1
        elif char == '}' and depth > 0:
            depth -= 1
            if depth == 0:
                parsed = _parse_single_object(text[start:index + 1])
                if parsed is not None:
                    objects.append(parsed)
                start = None

    return objects or None


def _scan_flat_objects(text: str) -> Optional[List[dict]]:
    """
    Last resort: pair each "{" with the next "}" up to the last "}" in the
    text and keep whatever flat sibling objects parse.
    """
    last_close = text.rfind('}')
    if last_close <= 0:
        return None

    objects = []
    position = 0
    while position < last_close:
        open_index = text.find('{', position)
        if open_index == -1 or open_index >= last_close:
            break
        close_index = text.find('}', open_index)
        if close_index == -1:
            break
        parsed = _parse_single_object(text[open_index:close_index + 1])
        if parsed is not None:
            objects.append(parsed)
        position = close_index + 1

    return objects or None


def _parse_single_object(candidate: str) -> Optional[dict]:
    try:
        value = json.loads(f"[{candidate}]")
    except json.JSONDecodeError:
        return None
    if len(value) == 1 and isinstance(value[0], dict):
        return value[0]
    return None


def _objects_only(values: list) -> List[dict]:
    objects = [value for value in values if isinstance(value, dict)]
    dropped = len(values) - len(objects)
    if dropped:
        logger.warning(f"Dropped {dropped} non-object entries from event array")
    return objects
