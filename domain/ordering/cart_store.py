# domain/ordering/cart_store.py
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from client.errors import error_info, user_message
from domain.ordering.messages import message
from domain.ordering.scope import Scope, ScopedStore
from models.api_models import CartLine, CartSummary
from utils.logging import log_event


def _data(resp: Any) -> Any:
    return resp.get("data") if isinstance(resp, dict) else None


def _parse_cart(data: Any) -> Tuple[Optional[Dict[str, Any]], List[CartLine]]:
    """
    backend cart -> (raw cart, lines). Raises ValueError on a malformed line.
    """
    if not isinstance(data, dict):
        return None, []
    return data, [CartLine.from_api(i) for i in (data.get("items") or []) if isinstance(i, dict)]


def _parse_summary(data: Any) -> Optional[CartSummary]:
    return CartSummary.model_validate(data) if isinstance(data, dict) else None


class CartStore(ScopedStore):
    """
    One hydrated cart per (hotel_id, branch_id).

    initialize_cart is the entry point callers use: it fetches at most once per
    scope until the scope changes. Mutations go to the backend and replace the
    line items with the cart it returns. Totals are always derived from items.

    cart_summary is the backend's own count of the cart. It is refreshed after
    every successful mutation and is informational only.
    """

    def __init__(self, api: Any, *, session_id: str = "default"):
        super().__init__(api, session_id=session_id)
        self.cart: Optional[Dict[str, Any]] = None
        self.items: List[CartLine] = []
        self.cart_summary: Optional[CartSummary] = None
        self.is_loading: bool = False
        self.is_loaded: bool = False
        self.is_page_initialized: bool = False
        self.is_cart_visible: bool = False
        self.error: Optional[str] = None

    # ----------------------------
    # derived
    # ----------------------------

    @property
    def total_items(self) -> int:
        return sum(it.quantity for it in self.items)

    @property
    def total_amount(self) -> float:
        return sum(it.price * it.quantity for it in self.items)

    @property
    def should_show_cart(self) -> bool:
        return self.is_cart_visible and self.total_items > 0

    def find_item(self, item_id: str) -> Optional[CartLine]:
        for it in self.items:
            if it.item_id == item_id:
                return it
        return None

    # ----------------------------
    # scope / hydration
    # ----------------------------

    def set_hotel_and_branch(self, hotel_id: str, branch_id: str) -> None:
        if not self.set_scope(hotel_id, branch_id):
            return
        # items of the previous scope must never mix with the new one
        self.cart = None
        self.items = []
        self.cart_summary = None
        self.is_loaded = False
        self.is_loading = False
        self.is_page_initialized = False
        self.error = None
        log_event(self.session_id, "cart_scope_changed", {"hotel_id": self.hotel_id, "branch_id": self.branch_id})

    def _apply_cart(self, cart: Optional[Dict[str, Any]], items: List[CartLine]) -> None:
        self.cart = cart
        self.items = items

    async def initialize_cart(self) -> None:
        if not self.has_scope():
            self.error = message("scope.missing")
            return
        if self.is_loaded:
            return
        await self.single_flight(("cart",) + self.scope, self.fetch_cart)

    async def fetch_cart(self) -> None:
        if not self.has_scope():
            return
        scope: Scope = self.scope
        self.is_loading = True
        self.error = None
        try:
            resp = await self.api.get_cart(*scope)
            cart, items = _parse_cart(_data(resp))
        except Exception as e:
            if not self.is_current(scope):
                return
            self.error = user_message(e, message("cart.fetch"))
            self.is_loading = False
            self.is_loaded = False
            log_event(self.session_id, "cart_fetch_fail", error_info(e))
            return

        if not self.is_current(scope):
            log_event(self.session_id, "cart_fetch_stale", {"issued_for": list(scope)})
            return
        self._apply_cart(cart, items)
        self.is_loading = False
        self.is_loaded = True
        log_event(self.session_id, "cart_fetched", {"items": len(self.items), "total_items": self.total_items})

    async def fetch_cart_summary(self) -> None:
        if not self.has_scope():
            return
        scope: Scope = self.scope
        try:
            resp = await self.api.get_cart_summary(*scope)
            summary = _parse_summary(_data(resp))
        except Exception as e:
            # the summary never blocks the cart
            log_event(self.session_id, "cart_summary_fail", error_info(e))
            return
        if self.is_current(scope):
            self.cart_summary = summary

    async def initialize_cart_page(self) -> None:
        """
        Cart and summary fetched together, once per scope.
        """
        if self.is_page_initialized:
            return
        if not self.has_scope():
            self.error = message("scope.missing")
            return
        await self.single_flight(("cart_page",) + self.scope, self._load_cart_page)

    async def _load_cart_page(self) -> None:
        scope: Scope = self.scope
        self.is_loading = True
        self.error = None
        try:
            cart_resp, summary_resp = await asyncio.gather(
                self.api.get_cart(*scope),
                self.api.get_cart_summary(*scope),
            )
            cart, items = _parse_cart(_data(cart_resp))
            summary = _parse_summary(_data(summary_resp))
        except Exception as e:
            if not self.is_current(scope):
                return
            self.error = user_message(e, message("cart.page"))
            self.is_loading = False
            log_event(self.session_id, "cart_page_fail", error_info(e))
            return

        if not self.is_current(scope):
            log_event(self.session_id, "cart_page_stale", {"issued_for": list(scope)})
            return
        self._apply_cart(cart, items)
        self.cart_summary = summary
        self.is_loading = False
        self.is_loaded = True
        self.is_page_initialized = True
        log_event(self.session_id, "cart_page_ready", {"items": len(self.items), "total_items": self.total_items})

    # ----------------------------
    # mutations
    # ----------------------------

    async def _mutate(
        self,
        op: str,
        call: Callable[[str, str], Awaitable[Dict[str, Any]]],
        *,
        replace: bool = True,
    ) -> Optional[List[CartLine]]:
        if not self.has_scope():
            self.error = message("scope.missing")
            return None

        scope: Scope = self.scope
        self.is_loading = True
        self.error = None
        try:
            resp = await call(*scope)
            cart, items = _parse_cart(_data(resp)) if replace else (None, [])
        except Exception as e:
            if self.is_current(scope):
                self.error = user_message(e, message(f"cart.{op}"))
                self.is_loading = False
            log_event(self.session_id, "cart_mutation_fail", {"op": op, **error_info(e)})
            return None

        if not self.is_current(scope):
            log_event(self.session_id, "cart_mutation_stale", {"op": op, "issued_for": list(scope)})
            return None

        self._apply_cart(cart, items)
        self.is_loading = False
        log_event(self.session_id, "cart_mutated", {"op": op, "total_items": self.total_items})
        if replace:
            await self.fetch_cart_summary()
        else:
            self.cart_summary = None
            self.is_page_initialized = False
        return list(self.items)

    async def add_to_cart(self, product_id: str, quantity: int = 1) -> Optional[List[CartLine]]:
        items = await self._mutate("add", lambda h, b: self.api.add_to_cart(product_id, quantity, h, b))
        if items is not None:
            self.is_cart_visible = True
        return items

    async def update_item_quantity(self, item_id: str, quantity: int) -> Optional[List[CartLine]]:
        if quantity <= 0:
            return await self.remove_item(item_id)
        return await self._mutate("update", lambda h, b: self.api.update_cart_item(item_id, quantity, h, b))

    async def remove_item(self, item_id: str) -> Optional[List[CartLine]]:
        return await self._mutate("remove", lambda h, b: self.api.remove_cart_item(item_id, h, b))

    async def bulk_update(self, updates: Iterable[Dict[str, Any]]) -> Optional[List[CartLine]]:
        payload = [
            {"itemId": u.get("item_id") or u.get("itemId"), "quantity": int(u.get("quantity") or 0)}
            for u in updates
        ]
        return await self._mutate("bulk_update", lambda h, b: self.api.bulk_update_cart(payload, h, b))

    async def clear_cart(self) -> Optional[List[CartLine]]:
        return await self._mutate("clear", self.api.clear_cart, replace=False)

    def clear_cart_local(self) -> None:
        self._apply_cart(None, [])
        self.cart_summary = None
        self.is_page_initialized = False

    def set_cart_visible(self, visible: bool) -> None:
        self.is_cart_visible = bool(visible)
