from __future__ import annotations

import os


def float_from_env(name: str, default: float) -> float:
    """Read a numeric environment variable, falling back to `default` when unset."""

    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}; must be a number") from exc
