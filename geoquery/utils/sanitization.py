"""
Input sanitization utilities for security and data integrity.
"""
import re
import logging
import unicodedata
from typing import Any, Dict, List, Union

logger = logging.getLogger(__name__)


def normalize_unicode(text: str) -> str:
    """
    Normalize Unicode so fullwidth or compatibility characters compare equal
    to their ASCII forms (ｃａｆｅ -> cafe), and drop non-printable characters.
    """
    if not text:
        return ""

    normalized = unicodedata.normalize('NFKC', text)

    return ''.join(
        char for char in normalized
        if char.isprintable() or char in ('\n', '\r', '\t', ' ')
    )


# Prompt-injection markers that never belong in a location question.
_INJECTION_PATTERNS = [
    r'(?:^|\s)(?:System|Assistant|Human|AI)\s*:.*?$',  # Role overrides
    r'Ignore\s+(?:all\s+)?previous\s+instructions.*?$',
    r'Forget\s+(?:all\s+)?previous\s+instructions.*?$',
    r'You\s+are\s+now\s+.*?$',
    r'\[INST\].*?\[/INST\]',  # Instruction templates
    r'<\|.*?\|>',  # Special token patterns
    r'\{\{.*?\}\}',  # Template injection
    r'<script.*?</script>',
    r'<script.*?>',
    r'javascript:\S*',
]


def sanitize_text_input(text: str, max_length: int = 500) -> str:
    """
    Sanitize a user query before it is analyzed or embedded in a prompt.

    Normalizes Unicode, strips prompt-injection markers, collapses whitespace
    and caps the length. Place names, addresses and coordinates pass through
    unchanged.
    """
    if not text:
        return ""

    sanitized = normalize_unicode(text).strip()

    for pattern in _INJECTION_PATTERNS:
        cleaned = re.sub(pattern, '', sanitized, flags=re.IGNORECASE | re.MULTILINE | re.DOTALL)
        if cleaned != sanitized:
            logger.warning(f"Stripped injection pattern from query: {pattern}")
            sanitized = cleaned

    sanitized = re.sub(r'\s+', ' ', sanitized).strip()

    if len(sanitized) > max_length:
        logger.info(f"Query truncated from {len(sanitized)} to {max_length} characters")
        sanitized = sanitized[:max_length].rstrip()

    return sanitized


def sanitize_operation_output(
    output: Union[str, Dict, List, Any],
    max_length: int = 5000
) -> Union[str, Dict, List, Any]:
    """
    Sanitize data returned by an external operation before it is placed in a
    reasoning prompt.

    Third-party payloads (event descriptions, place reviews) are free text and
    can carry injected instructions. Strings are scrubbed recursively; numbers,
    booleans and None pass through. Structure is preserved.
    """
    if isinstance(output, str):
        cleaned = normalize_unicode(output)
        for pattern in _INJECTION_PATTERNS:
            cleaned = re.sub(pattern, '', cleaned, flags=re.IGNORECASE | re.MULTILINE | re.DOTALL)
        if len(cleaned) > max_length:
            cleaned = cleaned[:max_length] + "...[truncated]"
        return cleaned

    if isinstance(output, dict):
        return {key: sanitize_operation_output(value, max_length) for key, value in output.items()}

    if isinstance(output, list):
        return [sanitize_operation_output(item, max_length) for item in output]

    return output
