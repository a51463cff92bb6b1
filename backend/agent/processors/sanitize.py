"""Normalize model output before it is handed to a delivery surface."""

QUOTE_CHARS = "\"“”"


def sanitize_response(text: str | None) -> str:
    """
    Clean up a model reply.

    - trims whitespace and quote characters wrapping the whole reply
    - drops straight double quotes left unbalanced
    - returns "" when nothing usable remains
    """
    if not text:
        return ""

    cleaned = text.strip()
    while _is_wrapped(cleaned):
        cleaned = cleaned[1:-1].strip()

    if cleaned.count('"') % 2 == 1:
        cleaned = cleaned.replace('"', "")

    return cleaned.strip()


def _is_wrapped(text: str) -> bool:
    """True when the first and last characters are one quote pair around the whole text.

    '"Fast" is not "him"' starts and ends with a quote but is two quoted
    phrases, so it is not wrapped.
    """
    if len(text) < 2 or text[0] not in QUOTE_CHARS or text[-1] not in QUOTE_CHARS:
        return False
    inner = text[1:-1].strip()
    if not any(q in inner for q in QUOTE_CHARS):
        return True
    # Doubly wrapped replies: ""text""
    return _is_wrapped(inner)
