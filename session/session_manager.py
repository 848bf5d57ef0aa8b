# session/session_manager.py
from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

import redis

from utils.logging import log_event

AUTH_RECORD_NAME = "user-auth-storage"


class AuthStorage:
    """
    Durable record of the auth store (identity + token pair) in redis.
    Key: {key_prefix}{session_id}:{record_name}
    Only the auth record lives here; every other store is memory-only.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "ordering:",
        record_name: str = AUTH_RECORD_NAME,
        ttl_seconds: int = 60 * 60 * 24 * 30,  # refresh tokens outlive this anyway
        client: Any = None,
    ):
        self.r = client if client is not None else redis.Redis.from_url(redis_url, decode_responses=True)
        self.key_prefix = key_prefix
        self.record_name = record_name
        self.ttl_seconds = ttl_seconds

    def _key(self, session_id: str) -> str:
        sid = (session_id or "default").strip() or "default"
        return f"{self.key_prefix}{sid}:{self.record_name}"

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        k = self._key(session_id)
        raw = self.r.get(k)
        if not raw:
            return None

        try:
            record = json.loads(raw)
        except ValueError:
            log_event(session_id, "auth_record_corrupt", {"redis_key": k})
            self.r.delete(k)
            return None

        # sliding expiry: activity extends the record
        self.r.expire(k, self.ttl_seconds)
        log_event(session_id, "auth_record_loaded", {"redis_key": k, "has_user": bool(record.get("user"))})
        return record if isinstance(record, dict) else None

    def save(self, session_id: str, record: Dict[str, Any]) -> None:
        k = self._key(session_id)
        st = dict(record or {})
        self.r.set(k, json.dumps(st, ensure_ascii=False))
        self.r.expire(k, self.ttl_seconds)
        log_event(session_id, "auth_record_saved", {
            "redis_key": k,
            "is_authenticated": st.get("isAuthenticated"),
            "ttl_seconds": self.ttl_seconds,
        })

    def delete(self, session_id: str) -> None:
        self.r.delete(self._key(session_id))


def default_auth_storage() -> AuthStorage:
    return AuthStorage(
        redis_url=os.getenv("ORDERING_REDIS_URL", "redis://localhost:6379/0"),
        ttl_seconds=int(os.getenv("ORDERING_AUTH_TTL_SECONDS", str(60 * 60 * 24 * 30))),
    )
