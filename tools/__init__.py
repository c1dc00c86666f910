"""Tools package: generation client, response parsing, text utilities, export."""

from tools.generation_client import (
    AgentSDKBackend,
    GenerationBackend,
    GenerationChunk,
    GenerationClient,
    is_rate_limit_error,
)
from tools.json_utils import parse_json_response, strip_code_fences
from tools.response_parser import (
    STRATEGIC_SPLIT,
    FALLBACK_MATCHERS,
    parse_response,
    split_response,
    decode_structured,
    visible_projection,
)
from tools.text_utils import (
    count_words,
    strip_html,
    tail,
    split_into_paragraphs,
    split_into_source_chunks,
)
from tools.exporter import export_json, export_document_html, export_filename, write_export

__all__ = [
    "AgentSDKBackend",
    "GenerationBackend",
    "GenerationChunk",
    "GenerationClient",
    "is_rate_limit_error",
    "parse_json_response",
    "strip_code_fences",
    "STRATEGIC_SPLIT",
    "FALLBACK_MATCHERS",
    "parse_response",
    "split_response",
    "decode_structured",
    "visible_projection",
    "count_words",
    "strip_html",
    "tail",
    "split_into_paragraphs",
    "split_into_source_chunks",
    "export_json",
    "export_document_html",
    "export_filename",
    "write_export",
]
