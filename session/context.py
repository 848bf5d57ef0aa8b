# session/context.py
from __future__ import annotations

import os
import time
import uuid
from typing import Any, Callable, Dict, Optional

from client.errors import error_info, user_message
from client.ordering_api import default_api_client
from domain.ordering.cart_store import CartStore
from domain.ordering.checkout import CheckoutOrchestrator, CheckoutPhase
from domain.ordering.coins_store import CoinsStore
from domain.ordering.menu_store import MenuStore
from domain.ordering.messages import message
from domain.ordering.offers_store import OffersStore
from models.api_models import CheckoutFormData, Identity, PaymentUserDetails
from session.auth_store import AuthSessionStore
from session.qr_store import QRSessionStore, ScanOutcome
from session.session_manager import default_auth_storage
from utils.logging import log_event
from utils.trace_utils import session_summary


class OrderingSession:
    """
    Owner of every store of one diner session.

    Created at session start, closed at session end. Cross-store effects are
    expressed here: the QR store listens to the auth store, and the resolved
    dining scope is pushed into menu/offers/cart/checkout.
    """

    def __init__(
        self,
        session_id: str,
        api: Any,
        storage: Any = None,
        *,
        navigate: Optional[Callable[[str], None]] = None,
        redirect_delay: float = 3.0,
    ):
        self.session_id = session_id
        self.api = api
        self.error: Optional[str] = None

        self.auth = AuthSessionStore(storage, session_id=session_id)
        if hasattr(api, "bind_auth"):
            api.bind_auth(self.auth, trace_id=session_id)

        self.qr = QRSessionStore(api, self.auth, session_id=session_id, navigate=navigate, redirect_delay=redirect_delay)
        self.menu = MenuStore(api, session_id=session_id)
        self.offers = OffersStore(api, session_id=session_id)
        self.cart = CartStore(api, session_id=session_id)
        self.coins = CoinsStore(api, session_id=session_id)
        self.payment = CheckoutOrchestrator(api, session_id=session_id)

        self._unsubscribe = self.auth.subscribe(self.qr.on_auth_changed)
        self.auth.restore()
        log_event(session_id, "session_opened", {"is_authenticated": self.auth.is_authenticated})

    def stores(self) -> Dict[str, Any]:
        return {
            "auth": self.auth,
            "qr": self.qr,
            "menu": self.menu,
            "offers": self.offers,
            "cart": self.cart,
            "coins": self.coins,
            "payment": self.payment,
        }

    def summary(self) -> Dict[str, Any]:
        return session_summary(self.stores())

    # ----------------------------
    # scope
    # ----------------------------

    def apply_scope(self, hotel_id: str, branch_id: str) -> None:
        for store in (self.menu, self.offers, self.cart, self.coins, self.payment):
            store.set_hotel_and_branch(hotel_id, branch_id)
        log_event(self.session_id, "scope_applied", {"hotel_id": hotel_id, "branch_id": branch_id})

    async def scan(self, hotel_id: Optional[str], branch_id: Optional[str], table_no: Optional[str]) -> ScanOutcome:
        outcome = await self.qr.scan(hotel_id, branch_id, table_no)
        if outcome.authenticated:
            self.apply_scope(self.qr.hotel_id or "", self.qr.branch_id or "")
        return outcome

    # ----------------------------
    # identity
    # ----------------------------

    async def login(self, email: str, password: str) -> Optional[Identity]:
        self.error = None
        try:
            resp = await self.api.login(email, password)
            data = resp.get("data") if isinstance(resp, dict) else None
            data = data if isinstance(data, dict) else {}
            user = Identity.model_validate(data.get("user") or {})
            access_token = data["accessToken"]
            refresh_token = data.get("refreshToken") or ""
        except Exception as e:
            self.error = user_message(e, message("auth.login"))
            log_event(self.session_id, "login_fail", error_info(e))
            return None

        self.auth.login(user, access_token, refresh_token)
        return user

    async def logout(self, all_sessions: bool = False) -> None:
        """
        Remote logout is best-effort notification; the local reset below always runs.
        """
        if self.auth.is_authenticated:
            try:
                if all_sessions:
                    await self.api.logout_all_sessions()
                else:
                    await self.api.logout_current_session()
            except Exception as e:
                log_event(self.session_id, "remote_logout_ignored", {"all_sessions": all_sessions, **error_info(e)})

        self.auth.logout()
        self.coins.reset()
        self.payment.clear_checkout_data()
        self.apply_scope("", "")

    # ----------------------------
    # checkout composition
    # ----------------------------

    async def checkout(
        self,
        payment_method: str = "razorpay",
        customer_note: str = "",
        coins_to_use: int = 0,
        table_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        table = table_id or self.qr.table_id
        if not table:
            self.payment.reject(CheckoutPhase.CHECKOUT_FAILED, message("checkout.no_table"))
            return None

        if coins_to_use > 0:
            order_value = self.cart.total_amount
            if self.coins.needs_max_usable(order_value):
                await self.coins.calculate_max_usable_coins(order_value)
            usable = self.coins.usable_coins(coins_to_use)
            if usable != coins_to_use:
                log_event(self.session_id, "coins_clamped", {"requested": coins_to_use, "usable": usable})
            coins_to_use = usable

        applied = self.offers.applied_offer
        form = CheckoutFormData(
            table_id=table,
            payment_method=payment_method,
            customer_note=customer_note,
            coins_to_use=coins_to_use,
            offer_code=applied.code if applied else "",
        )
        result = await self.payment.perform_checkout(form)
        if result is not None:
            # the backend turned the cart into an order
            self.cart.clear_cart_local()
        return result

    async def initiate_payment(self, order_id: Optional[str] = None, amount: Optional[float] = None) -> Optional[Dict[str, Any]]:
        user = self.auth.user
        details = PaymentUserDetails(
            user_id=user.id if user else "",
            user_phone=user.phone if user else "",
            user_name=user.name if user else "",
            user_email=user.email if user else "",
        )
        oid = order_id or self.payment.order_id
        amt = amount if amount is not None else self.payment.amount_to_pay
        if not oid or amt is None:
            self.payment.reject(CheckoutPhase.PAYMENT_FAILED, message("payment.initiate"))
            return None
        return await self.payment.initiate_payment(oid, amt, details)

    def close(self) -> None:
        self._unsubscribe()
        log_event(self.session_id, "session_closed", self.summary())


def new_session_id() -> str:
    return uuid.uuid4().hex


class SessionRegistry:
    """
    One OrderingSession per client session id. Memory-only except the auth record.

    Sessions idle for longer than idle_ttl seconds are closed on the next
    lookup. Past max_sessions the least recently used one is closed.
    """

    def __init__(
        self,
        api_factory: Callable[[], Any] = default_api_client,
        storage_factory: Callable[[], Any] = default_auth_storage,
        *,
        idle_ttl: Optional[float] = None,
        max_sessions: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_factory = api_factory
        self.storage_factory = storage_factory
        self.idle_ttl = idle_ttl if idle_ttl is not None else float(os.getenv("ORDERING_SESSION_IDLE_TTL", "1800"))
        self.max_sessions = max_sessions if max_sessions is not None else int(os.getenv("ORDERING_MAX_SESSIONS", "1000"))
        self.clock = clock
        self._storage: Any = None
        self._sessions: Dict[str, OrderingSession] = {}
        self._last_seen: Dict[str, float] = {}

    def _storage_once(self) -> Any:
        if self._storage is None:
            self._storage = self.storage_factory()
        return self._storage

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> OrderingSession:
        sid = (session_id or "").strip()
        if not sid:
            raise ValueError("session id is required")

        now = self.clock()
        self._evict_idle(now)
        s = self._sessions.get(sid)
        if s is None:
            delay = float(os.getenv("ORDERING_SCAN_REDIRECT_DELAY", "3"))
            s = OrderingSession(sid, self.api_factory(), self._storage_once(), redirect_delay=delay)
            self._sessions[sid] = s
        self._last_seen[sid] = now
        self._evict_overflow(keep=sid)
        return s

    def _evict_idle(self, now: float) -> None:
        if self.idle_ttl <= 0:
            return
        for sid, seen in list(self._last_seen.items()):
            if now - seen > self.idle_ttl:
                log_event(sid, "session_evicted", {"reason": "idle", "idle_seconds": round(now - seen, 1)})
                self.drop(sid)

    def _evict_overflow(self, keep: str) -> None:
        while self.max_sessions > 0 and len(self._sessions) > self.max_sessions:
            oldest = min((sid for sid in self._last_seen if sid != keep), key=self._last_seen.__getitem__, default=None)
            if oldest is None:
                return
            log_event(oldest, "session_evicted", {"reason": "capacity", "max_sessions": self.max_sessions})
            self.drop(oldest)

    def drop(self, session_id: str) -> None:
        self._last_seen.pop(session_id, None)
        s = self._sessions.pop(session_id, None)
        if s is not None:
            s.close()

    def clear(self) -> None:
        for sid in list(self._sessions.keys()):
            self.drop(sid)
