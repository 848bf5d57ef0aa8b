# utils/trace_utils.py
from __future__ import annotations

from typing import Any, Dict, Optional


def _scope_of(store: Any) -> Dict[str, Optional[str]]:
    return {
        "hotel_id": getattr(store, "hotel_id", None) or None,
        "branch_id": getattr(store, "branch_id", None) or None,
    }


def store_summary(store: Any) -> Dict[str, Any]:
    """
    Small log view of a store.
    Lists are reduced to counts, error and flags are kept.
    """
    if store is None:
        return {"_type": "None"}

    out: Dict[str, Any] = {"_type": type(store).__name__}
    out.update(_scope_of(store))

    for attr in ("is_loaded", "is_loading", "is_authenticated", "phase"):
        if hasattr(store, attr):
            v = getattr(store, attr)
            out[attr] = getattr(v, "value", v)

    for attr in ("items", "offers"):
        v = getattr(store, attr, None)
        if isinstance(v, list):
            out[f"{attr}_count"] = len(v)

    err = getattr(store, "error", None)
    if err:
        out["error"] = err
    return out


def session_summary(stores: Dict[str, Any]) -> Dict[str, Any]:
    """
    {name: store} -> {name: store_summary}
    """
    return {name: store_summary(s) for name, s in (stores or {}).items()}


