"""Model identifier normalization."""

import re

_PROVIDER_PREFIX = re.compile(r"^(?:models/)+")
_SEPARATORS = re.compile(r"[_\s]+")
_REPEATED_HYPHENS = re.compile(r"-+")

# Dotted versions flattened by separator collapsing
_VERSION_FIXUPS = (
    ("gemini-1-5", "gemini-1.5"),
    ("gemini-1-0", "gemini-1.0"),
)

# Deprecated ids mapped to their current successors
STORED_MODEL_ALIASES: dict[str, str] = {
    "gemini-1.5-pro": "gemini-pro-latest",
    "gemini-1.5-flash": "gemini-flash-latest",
}


def normalize_model_id(raw: str) -> str:
    """Canonicalize a user-typed or stored model id before lookup.

    Args:
        raw: Model id as typed by the user or sent by the client

    Returns:
        Lowercase, hyphen-separated model id
    """
    value = raw.strip().lower()
    value = _PROVIDER_PREFIX.sub("", value)
    value = _SEPARATORS.sub("-", value)
    value = _REPEATED_HYPHENS.sub("-", value)
    for flattened, dotted in _VERSION_FIXUPS:
        value = value.replace(flattened, dotted)
    return value


def normalize_stored_model_id(model_id: str) -> str:
    """Rewrite a deprecated model id read back from storage."""
    return STORED_MODEL_ALIASES.get(model_id, model_id)
