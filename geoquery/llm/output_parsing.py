"""
Boundary parsing of reasoning-service output.

Executors return whatever they like: plain text, JSON text (often wrapped in
markdown fences), or an already structured object. The output is resolved
exactly once into a ReasoningOutput so that nothing downstream has to probe
types again.
"""
import json
import logging
from typing import Annotated, Any, Literal, Union
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class TextOutput(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class StructuredOutput(BaseModel):
    kind: Literal["structured"] = "structured"
    data: Any


class ParseFailedOutput(BaseModel):
    """The output looked like JSON but could not be decoded; the raw text is kept."""
    kind: Literal["parse_failed"] = "parse_failed"
    raw: str
    error: str


ReasoningOutput = Annotated[
    Union[TextOutput, StructuredOutput, ParseFailedOutput],
    Field(discriminator="kind"),
]


def strip_code_fences(content: str) -> str:
    """Remove a surrounding ```json ... ``` or ``` ... ``` block."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def _looks_like_json(content: str) -> bool:
    return (content.startswith("{") and content.endswith("}")) or (
        content.startswith("[") and content.endswith("]")
    )


def parse_reasoning_output(raw: Any) -> Union[TextOutput, StructuredOutput, ParseFailedOutput]:
    """
    Resolve executor output into the tagged union.

    - dict / list            -> StructuredOutput
    - JSON-looking text      -> StructuredOutput, or ParseFailedOutput if it does not decode
    - any other text         -> TextOutput
    - None / other scalars   -> TextOutput of their string form
    """
    if isinstance(raw, (dict, list)):
        return StructuredOutput(data=raw)

    if raw is None:
        return TextOutput(text="")

    if not isinstance(raw, str):
        return TextOutput(text=str(raw))

    content = strip_code_fences(raw)
    if not _looks_like_json(content):
        return TextOutput(text=raw.strip())

    try:
        return StructuredOutput(data=json.loads(content))
    except json.JSONDecodeError as e:
        logger.warning(f"Executor output looked like JSON but failed to parse: {e}")
        return ParseFailedOutput(raw=raw, error=str(e))


def extract_text(payload: Any) -> str:
    """
    Best-effort human-readable text from an executor payload.

    Accepts a plain string, {"text": ...}, {"content": ...}, {"summary": ...},
    or a list of exchanged messages (the last one wins). Anything else is
    JSON-stringified.
    """
    if isinstance(payload, TextOutput):
        return payload.text
    if isinstance(payload, StructuredOutput):
        return extract_text(payload.data)
    if isinstance(payload, ParseFailedOutput):
        return payload.raw

    if isinstance(payload, str):
        return payload

    if isinstance(payload, dict):
        for key in ("text", "content", "summary"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value

    if isinstance(payload, list) and payload:
        last = payload[-1]
        if isinstance(last, (str, dict)):
            text = extract_text(last)
            if text:
                return text

    if payload is None:
        return ""

    return json.dumps(payload, default=str)


def structured_data(output: Any) -> Any:
    """The decoded JSON of a StructuredOutput, else None."""
    if isinstance(output, StructuredOutput):
        return output.data
    return None
