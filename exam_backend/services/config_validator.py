import json
import re
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from pydantic import ValidationError

from exam_backend.api.schemas import GenerationConfig
from exam_backend.errors import ConfigValidationError

_INT_LITERAL = re.compile(r"^[+-]?\d+$")

# Form keys that are copied through as plain text.
_TEXT_FIELDS = ("title", "subject", "questionType", "complexity", "language", "sourceMode", "pastedText")


def _field_path(loc: Tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) if loc else "body"


def _collect_errors(exc: ValidationError) -> Dict[str, List[str]]:
    """Flatten pydantic errors into {field path: [messages]}, keeping every failing field."""
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        errors.setdefault(_field_path(err.get("loc", ())), []).append(err.get("msg", "Invalid value"))
    return errors


# PUBLIC_INTERFACE
def validate_generation_config(data: Any) -> GenerationConfig:
    """
    Validate an arbitrary object against the GenerationConfig shape.

    Args:
        data: Decoded JSON body (normally a dict).

    Returns:
        GenerationConfig: The normalized config (absent 'aoc' becomes an empty list).

    Raises:
        ConfigValidationError: With one entry per failing field.
    """
    try:
        return GenerationConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigValidationError(_collect_errors(exc)) from exc


# PUBLIC_INTERFACE
def parse_question_count(raw: str) -> int:
    """Parse a form value as an integer literal. Raises ValueError otherwise."""
    text = (raw or "").strip()
    if not _INT_LITERAL.match(text):
        raise ValueError("questionCount must be an integer")
    return int(text)


# PUBLIC_INTERFACE
def parse_aoc(values: Sequence[str]) -> List[str]:
    """
    Parse the 'aoc' topic list from form values.

    Accepted encodings:
        - repeated 'aoc' fields, one tag each;
        - a single JSON array of strings, e.g. '["cells", "genetics"]';
        - a single comma separated string, e.g. 'cells, genetics'.

    A single value starting with '[' is always treated as JSON and rejected if it
    is not a valid array of strings, so a malformed array never degrades into
    comma splitting.
    """
    if len(values) > 1:
        return [v.strip() for v in values if v and v.strip()]
    raw = (values[0] if values else "").strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise ValueError("aoc must be a JSON array of strings or comma separated text") from exc
        if not isinstance(parsed, list) or not all(isinstance(tag, str) for tag in parsed):
            raise ValueError("aoc JSON must be an array of strings")
        return parsed
    return [part.strip() for part in raw.split(",") if part.strip()]


# PUBLIC_INTERFACE
def config_from_form(fields: Mapping[str, Sequence[str]]) -> GenerationConfig:
    """
    Build and validate a GenerationConfig from discrete multipart form fields.

    Args:
        fields: Mapping of form field name to every text value submitted under it.

    Raises:
        ConfigValidationError: If coercion or schema validation fails. Coercion
            errors and schema errors are reported together.
    """
    payload: Dict[str, Any] = {}
    coercion_errors: Dict[str, List[str]] = {}

    for key in _TEXT_FIELDS:
        values = fields.get(key)
        if values:
            payload[key] = values[-1]

    count_values = fields.get("questionCount")
    if count_values:
        try:
            payload["questionCount"] = parse_question_count(count_values[-1])
        except ValueError as exc:
            coercion_errors["questionCount"] = [str(exc)]

    aoc_values = fields.get("aoc")
    if aoc_values:
        try:
            payload["aoc"] = parse_aoc(aoc_values)
        except ValueError as exc:
            coercion_errors["aoc"] = [str(exc)]

    try:
        config = GenerationConfig.model_validate(payload)
    except ValidationError as exc:
        schema_errors = _collect_errors(exc)
        # A coerced field missing from the payload would otherwise also be reported as "required".
        for key in coercion_errors:
            schema_errors.pop(key, None)
        schema_errors.update(coercion_errors)
        raise ConfigValidationError(schema_errors) from exc

    if coercion_errors:
        raise ConfigValidationError(coercion_errors)
    return config
