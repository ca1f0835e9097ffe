from __future__ import annotations

from typing import Any, Callable, Dict


_REGISTRY: Dict[str, Callable[..., Any]] = {}


def register(name: str, factory) -> None:
    _REGISTRY[name] = factory


def get_source(name: str, **kwargs):
    if name not in _REGISTRY:
        raise KeyError(f"Unknown source: {name}")
    return _REGISTRY[name](**kwargs)


def available_sources() -> Dict[str, Any]:
    # Registration order doubles as the tie-break order when results are merged
    return dict(_REGISTRY)
