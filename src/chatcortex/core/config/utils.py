"""Configuration helper functions."""

from collections.abc import Iterable, Mapping


def is_gemini_model(model: str) -> bool:
    """Check if a model is an actual Gemini model.

    Gemma models are served through the same Google endpoint but lack Gemini's
    system instruction and inline media support.

    Args:
        model: Model name (e.g., "gemini-2.0-flash-001", "gemma-3-27b-it")

    Returns:
        True if this is a genuine Gemini model, False for Gemma and other
        models.

    """
    model_lower = model.lower()
    if "gemma" in model_lower:
        return False
    return "gemini" in model_lower


def normalize_api_key(raw_api_key: object) -> str | None:
    """Normalize a provider ``api_key`` config value into a single string.

    Lists are accepted for compatibility with multi-key configs; the first
    non-empty entry wins.
    """
    if raw_api_key is None:
        return None

    if isinstance(raw_api_key, str):
        return raw_api_key.strip() or None

    if isinstance(raw_api_key, Mapping) or not isinstance(raw_api_key, Iterable):
        return str(raw_api_key)

    for value in raw_api_key:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def coerce_positive_number(
    raw_value: object,
    default: float,
) -> float:
    """Return ``raw_value`` as a positive number, else ``default``."""
    if isinstance(raw_value, bool):
        return default

    try:
        value = float(raw_value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default

    if value <= 0:
        return default
    return value
