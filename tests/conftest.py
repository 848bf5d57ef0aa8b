"""
Shared test doubles for the ordering session engine.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from session.session_manager import AuthStorage


# ── Test Doubles ─────────────────────────────────────────────

class FakeRedis:
    """get/set/expire/delete subset used by AuthStorage."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttl: Dict[str, int] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        return True

    def expire(self, key, seconds):
        self.ttl[key] = seconds
        return True

    def delete(self, key):
        self.data.pop(key, None)
        return 1


class FakeApi:
    """
    Async backend double.

    responses[name] may be a value, an exception, a callable(*args) or a list
    consumed one entry per call. gates[name] (asyncio.Event) holds calls open.
    """

    def __init__(self):
        self.calls: List[Tuple[str, tuple]] = []
        self.responses: Dict[str, Any] = {}
        self.gates: Dict[str, asyncio.Event] = {}

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)

    def args(self, name: str) -> List[tuple]:
        return [a for n, a in self.calls if n == name]

    async def _handle(self, name: str, *args) -> Any:
        self.calls.append((name, args))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        r = self.responses.get(name)
        if isinstance(r, list):
            r = r.pop(0) if r else {}
        if callable(r) and not isinstance(r, BaseException):
            r = r(*args)
        if isinstance(r, BaseException):
            raise r
        return r if r is not None else {}

    async def login(self, email, password):
        return await self._handle("login", email, password)

    async def logout_current_session(self):
        return await self._handle("logout_current_session")

    async def logout_all_sessions(self):
        return await self._handle("logout_all_sessions")

    async def scan_qr(self, params):
        return await self._handle("scan_qr", params)

    async def get_menu_items(self, hotel_id, branch_id, filters=None):
        return await self._handle("get_menu_items", hotel_id, branch_id, filters)

    async def get_categories(self, hotel_id, branch_id, food_type=None):
        return await self._handle("get_categories", hotel_id, branch_id)

    async def get_available_offers(self, hotel_id, branch_id):
        return await self._handle("get_available_offers", hotel_id, branch_id)

    async def get_cart(self, hotel_id, branch_id):
        return await self._handle("get_cart", hotel_id, branch_id)

    async def get_cart_summary(self, hotel_id, branch_id):
        return await self._handle("get_cart_summary", hotel_id, branch_id)

    async def add_to_cart(self, product_id, quantity, hotel_id, branch_id):
        return await self._handle("add_to_cart", product_id, quantity, hotel_id, branch_id)

    async def update_cart_item(self, item_id, quantity, hotel_id, branch_id):
        return await self._handle("update_cart_item", item_id, quantity, hotel_id, branch_id)

    async def remove_cart_item(self, item_id, hotel_id, branch_id):
        return await self._handle("remove_cart_item", item_id, hotel_id, branch_id)

    async def clear_cart(self, hotel_id, branch_id):
        return await self._handle("clear_cart", hotel_id, branch_id)

    async def bulk_update_cart(self, updates, hotel_id, branch_id):
        return await self._handle("bulk_update_cart", updates, hotel_id, branch_id)

    async def get_coin_balance(self):
        return await self._handle("get_coin_balance")

    async def get_max_usable_coins(self, order_value, hotel_id, branch_id):
        return await self._handle("get_max_usable_coins", order_value, hotel_id, branch_id)

    async def calculate_coin_discount(self, order_value, coins_to_use, hotel_id, branch_id):
        return await self._handle("calculate_coin_discount", order_value, coins_to_use, hotel_id, branch_id)

    async def checkout(self, request):
        return await self._handle("checkout", request)

    async def initiate_razorpay_payment(self, request):
        return await self._handle("initiate_razorpay_payment", request)

    async def check_payment_status(self, transaction_id):
        return await self._handle("check_payment_status", transaction_id)


# ── Payload builders ─────────────────────────────────────────

def cart_item(item_id: str, price: float, quantity: int, product_id: Optional[str] = None, name: str = "Paneer Tikka") -> Dict[str, Any]:
    return {
        "_id": item_id,
        "foodItem": {
            "_id": product_id or f"food-{item_id}",
            "name": name,
            "foodType": "veg",
            "category": {"_id": "cat-1", "name": "Starters"},
            "image": None,
        },
        "quantity": quantity,
        "price": price,
        "totalPrice": price * quantity,
    }


def cart_response(*items: Dict[str, Any]) -> Dict[str, Any]:
    return {"success": True, "data": {"_id": "cart-1", "items": list(items)}}


def scan_response(authenticated: bool = True, success: bool = True, table_no: int = 5) -> Dict[str, Any]:
    return {
        "success": success,
        "data": {
            "authenticated": authenticated,
            "hotel": {"id": "H", "name": "Hotel Saffron"},
            "branch": {"id": "B", "name": "Indiranagar"},
            "table": {"id": "table-5", "tableNumber": table_no},
            "user": {"id": "u-1", "name": "Asha", "email": "asha@example.com"},
        },
    }


def summary_response(subtotal: float, total_items: int, item_count: int) -> Dict[str, Any]:
    return {"success": True, "data": {"subtotal": subtotal, "totalItems": total_items, "itemCount": item_count, "isEmpty": total_items == 0}}


OFFERS = [
    {"_id": "o1", "code": "WELCOME10", "title": "10% off", "discountType": "percent", "discountValue": 10,
     "minOrderValue": 200, "maxDiscountAmount": 50},
    {"_id": "o2", "code": "FLAT75", "title": "Flat 75", "discountType": "fixed", "discountValue": 75,
     "minOrderValue": 500},
]


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def storage(fake_redis) -> AuthStorage:
    return AuthStorage(client=fake_redis)
