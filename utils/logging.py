# utils/logging.py
from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Any, Dict, Optional

# any key containing one of these fragments is masked
SENSITIVE_FRAGMENTS = ("token", "password", "authorization", "secret", "cookie")

MAX_STR = 300
MAX_ITEMS = 25
MAX_DEPTH = 5

_BEARER_RE = re.compile(r"(?i)bearer\s+[A-Za-z0-9\-_.=]+")


def _is_sensitive(key: Any) -> bool:
    k = str(key).lower().replace("-", "_")
    return any(frag in k for frag in SENSITIVE_FRAGMENTS)


def _clip(s: str) -> str:
    s = _BEARER_RE.sub("Bearer ***", s)
    return s if len(s) <= MAX_STR else s[:MAX_STR] + "...(truncated)"


def _sanitize(obj: Any, depth: int = 0) -> Any:
    """
    Log-safe copy of a payload: JSON types only, bounded size, credentials masked.
    """
    if depth > MAX_DEPTH:
        return "...(max_depth)"

    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, str):
        return _clip(obj)

    if hasattr(obj, "model_dump"):
        return _sanitize(obj.model_dump(by_alias=True), depth + 1)

    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for i, (k, v) in enumerate(obj.items()):
            if i >= MAX_ITEMS:
                out["_truncated_keys"] = len(obj) - MAX_ITEMS
                break
            out[str(k)] = "***" if _is_sensitive(k) else _sanitize(v, depth + 1)
        return out

    if isinstance(obj, (list, tuple, set)):
        seq = list(obj)
        out_list = [_sanitize(x, depth + 1) for x in seq[:MAX_ITEMS]]
        if len(seq) > MAX_ITEMS:
            out_list.append(f"...(+{len(seq) - MAX_ITEMS})")
        return out_list

    if isinstance(obj, BaseException):
        return {"error_type": type(obj).__name__, "error_message": _clip(str(obj))}

    return _clip(repr(obj))


logger = logging.getLogger("ordering")
logger.setLevel(logging.INFO)
logger.propagate = False

if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(_handler)


def log_event(trace_id: Optional[str], stage: str, payload: Dict[str, Any], level: int = logging.INFO) -> None:
    """
    One JSON line per event. trace_id is the dining session id.
    """
    if not logger.isEnabledFor(level):
        return
    line = {"trace_id": trace_id, "stage": stage, "payload": _sanitize(payload)}
    logger.log(level, json.dumps(line, ensure_ascii=False, default=str))
