import json
import re
import unicodedata
from typing import Any, Dict, List, Literal, overload


def clean_control_chars(s: str) -> str:
    return "".join(ch for ch in s if ch == "\n" or unicodedata.category(ch)[0] != "C")


def strip_code_fences(s: str) -> str:
    """Drop a leading ``` / ```json fence line and a trailing ``` fence."""
    s = (s or "").strip()
    if s.startswith("```"):
        s = s.split("\n", 1)[1] if "\n" in s else ""
    if s.rstrip().endswith("```"):
        s = s.rstrip()[:-3]
    return s.strip()


def _core_parse(text: str) -> Any:
    """Parse JSON from text, handling code fences, control chars, trailing commas."""
    text = strip_code_fences(clean_control_chars(text)).strip()

    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        # remove trailing commas before '}' or ']'
        text2 = re.sub(r",(\s*[}\]])", r"\1", text)
        obj = json.loads(text2)

    # sometimes models double-encode JSON as a string
    if isinstance(obj, str):
        obj = json.loads(obj)

    return obj

@overload
def extract_json(text: str, expect: Literal["object"] = "object") -> Dict[str, Any]: ...
@overload
def extract_json(text: str, expect: Literal["array"]) -> List[Any]: ...

def extract_json(text: str, expect: Literal["object", "array"] = "object"):
    """
    Parse JSON from model output.
    - expect="object" (default): returns Dict[str, Any], else raises ValueError.
    - expect="array": returns List[Any], else raises ValueError.
    json.JSONDecodeError (a ValueError) propagates for text that is not JSON.
    """
    obj = _core_parse(text)

    if expect == "array":
        if not isinstance(obj, list):
            raise ValueError("Expected a JSON array")
        return obj

    if not isinstance(obj, dict):
        raise ValueError("Expected a JSON object")
    return obj
