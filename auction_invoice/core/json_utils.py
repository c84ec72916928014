"""
Parsing of JSON returned as free text by the extraction model.

Models sometimes wrap their answer in a markdown code fence, add a sentence
before or after the object, or leave small syntax slips such as trailing
commas. These helpers recover the JSON object where that is unambiguous.
"""

import json
import re
from typing import Any

CODE_FENCE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)


def strip_code_fence(text: str) -> str:
    """Return the contents of the first markdown code fence, or the text itself."""
    match = CODE_FENCE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def extract_json_object(text: str) -> str:
    """Cut the outermost ``{...}`` span out of surrounding prose."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return text
    return text[start:end + 1]


def try_parse_or_repair_json(json_str: str) -> Any:
    """
    Parse a JSON string, applying repair strategies if the first attempt fails.

    Args:
        json_str: The JSON string to parse

    Returns:
        Parsed JSON value

    Raises:
        json.JSONDecodeError: If JSON cannot be parsed even after repair attempts
    """
    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        repaired = json_str

        # Smart quotes from OCR-like output
        repaired = repaired.replace("“", '"').replace("”", '"')

        # Trailing commas before a closing bracket or brace
        repaired = re.sub(r",\s*([}\]])", r"\1", repaired)

        # Missing comma between object members on separate lines
        repaired = re.sub(
            r'("(?:[^"\\]|\\.)*"|\d|null|true|false|[}\]])[ \t]*\n(\s*"(?:[^"\\]|\\.)*"\s*:)',
            r'\1,\n\2',
            repaired
        )

        # Missing colon after a key on the same line: "key" value -> "key": value
        repaired = re.sub(r'"([^"\n]+)"[ \t]+(["\d\[\{]|null|true|false)', r'"\1": \2', repaired)

        return json.loads(repaired)  # may raise; let it propagate for caller handling


def parse_model_json(text: str) -> Any:
    """Parse the JSON object in a model response, tolerating fences and prose."""
    return try_parse_or_repair_json(extract_json_object(strip_code_fence(text)))
