"""Helpers for overriding the empirical constants each analyzer ships with."""
from typing import Dict, Mapping, Optional


def merge_overrides(defaults: Mapping[str, float],
                    overrides: Optional[Mapping[str, float]],
                    owner: str) -> Dict[str, float]:
    """Return a copy of ``defaults`` updated with ``overrides``.

    Unknown keys are rejected so a typo can't silently leave a default in
    place.
    """
    merged = dict(defaults)
    if not overrides:
        return merged
    unknown = sorted(set(overrides) - set(defaults))
    if unknown:
        raise ValueError(f"Unknown {owner} setting(s): {', '.join(unknown)}")
    for key, value in overrides.items():
        merged[key] = float(value)
    return merged
