# session/auth_store.py
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from models.api_models import Identity
from utils.logging import log_event

AuthListener = Callable[["AuthSessionStore"], None]


class AuthSessionStore:
    """
    Long-lived identity of the diner: user + access/refresh tokens.

    Pure cache, no network calls. Every change is written through to the
    storage record (user, accessToken, refreshToken, isAuthenticated).
    Listeners are told whenever is_authenticated flips.
    """

    def __init__(self, storage: Any = None, *, session_id: str = "default"):
        self.storage = storage
        self.session_id = session_id

        self.user: Optional[Identity] = None
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None

        self._listeners: List[AuthListener] = []

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    # ----------------------------
    # subscription
    # ----------------------------

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, was_authenticated: bool, stage: str) -> None:
        self._persist()
        log_event(self.session_id, stage, {
            "user_id": self.user.id if self.user else None,
            "is_authenticated": self.is_authenticated,
        })
        if was_authenticated != self.is_authenticated:
            for listener in list(self._listeners):
                listener(self)

    # ----------------------------
    # actions
    # ----------------------------

    def login(self, user: Identity, access_token: str, refresh_token: str) -> None:
        was = self.is_authenticated
        self.user = user
        self.access_token = access_token
        self.refresh_token = refresh_token
        self._commit(was, "auth_login")

    def logout(self) -> None:
        self._reset("auth_logout")

    def clear_auth(self) -> None:
        self._reset("auth_cleared")

    def _reset(self, stage: str) -> None:
        was = self.is_authenticated
        self.user = None
        self.access_token = None
        self.refresh_token = None
        self._commit(was, stage)

    def update_tokens(self, access_token: Optional[str], refresh_token: Optional[str]) -> None:
        was = self.is_authenticated
        self.access_token = access_token
        self.refresh_token = refresh_token
        self._commit(was, "auth_tokens_updated")

    def update_user(self, user: Identity) -> None:
        was = self.is_authenticated
        self.user = user
        self._commit(was, "auth_user_updated")

    # ----------------------------
    # persistence
    # ----------------------------

    def to_record(self) -> Dict[str, Any]:
        return {
            "user": self.user.model_dump(by_alias=True) if self.user else None,
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "isAuthenticated": self.is_authenticated,
        }

    def _persist(self) -> None:
        if self.storage is not None:
            self.storage.save(self.session_id, self.to_record())

    def restore(self) -> bool:
        """
        Rehydrate from storage. Returns True when an authenticated record was found.
        Listeners are not notified.
        """
        if self.storage is None:
            return False
        record = self.storage.load(self.session_id) or {}

        user = record.get("user")
        self.user = Identity.model_validate(user) if isinstance(user, dict) else None
        self.access_token = record.get("accessToken") or None
        self.refresh_token = record.get("refreshToken") or None
        return self.is_authenticated
