from __future__ import annotations


def backoff_seconds(attempt: int, base: float = 1.0) -> float:
    """Delay before retry number ``attempt`` (1-based): base * 2**attempt."""
    if attempt < 0:
        raise ValueError("attempt must be non-negative")
    return base * (2 ** attempt)
