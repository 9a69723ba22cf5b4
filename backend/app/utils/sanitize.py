"""Input sanitization helpers"""

import re

_SCRIPT_BLOCK = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_HTML_TAG = re.compile(r"<[^>]+>")
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)


def sanitize_input(value: str) -> str:
    """Strip markup and script vectors from user-supplied text.

    Script blocks are removed with their content; other tags are removed
    but their text is kept.

    Args:
        value: Raw input

    Returns:
        Sanitized, trimmed text ("" for empty input)
    """
    if not value:
        return ""

    value = _SCRIPT_BLOCK.sub("", value)
    value = _HTML_TAG.sub("", value)
    value = _JS_SCHEME.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    return value.strip()
