"""
Reasoning-service adapter and boundary parsing of its output.
"""

from geoquery.llm.output_parsing import (
    ParseFailedOutput,
    ReasoningOutput,
    StructuredOutput,
    TextOutput,
    extract_text,
    parse_reasoning_output,
)
from geoquery.llm.reasoning import LangChainReasoningExecutor, ReasoningExecutor

__all__ = [
    "ParseFailedOutput",
    "ReasoningOutput",
    "StructuredOutput",
    "TextOutput",
    "extract_text",
    "parse_reasoning_output",
    "LangChainReasoningExecutor",
    "ReasoningExecutor",
]
