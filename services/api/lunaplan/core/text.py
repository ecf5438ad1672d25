import re

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """
    Remove a markdown wrapper around a provider response.

    Handles:
    - ```json ... ``` and bare ``` ... ``` fences
    - Leading/trailing whitespace
    - Prose before the first '{' or after the last '}' (e.g. "Here is your plan:")
    """
    if not text:
        return ""

    s = text.strip()

    match = _FENCE_RE.match(s)
    if match:
        s = match.group(1).strip()

    if s and not s.startswith(("{", "[")):
        start = s.find("{")
        end = s.rfind("}")
        if start != -1 and end > start:
            s = s[start:end + 1]

    return s.strip()


def clean_line(text: str) -> str:
    """Strip bold markers and leading bullets from a single guidance line."""
    if not text:
        return ""
    text = re.sub(r"(\*\*|__)(.*?)\1", r"\2", text)
    text = re.sub(r"^\s*[-*•]\s+", "", text)
    return text.strip()
