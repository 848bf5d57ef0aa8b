"""
OrderingSession wiring: scope fan-out, login/logout, checkout composition.
"""

import asyncio

import pytest

from client.errors import ApiError, TransportError
from conftest import OFFERS, FakeApi, cart_item, cart_response, scan_response
from domain.ordering.checkout import CheckoutPhase
from models.api_models import CheckoutFormData
from session.context import OrderingSession, SessionRegistry

LOGIN_OK = {
    "success": True,
    "data": {
        "user": {"id": "u-1", "name": "Asha", "email": "asha@example.com", "phone": "9000000001"},
        "accessToken": "at-1",
        "refreshToken": "rt-1",
    },
}


def _session(api, storage=None) -> OrderingSession:
    return OrderingSession("s1", api, storage)


def _scanned(api, storage=None) -> OrderingSession:
    api.responses["login"] = LOGIN_OK
    api.responses["scan_qr"] = scan_response()
    s = _session(api, storage)

    async def go():
        await s.login("asha@example.com", "pw")
        await s.scan("H", "B", "5")

    asyncio.run(go())
    return s


# ── Login / Logout ───────────────────────────────────────────

class TestSessionIdentity:
    def test_login_populates_auth(self, api, storage):
        api.responses["login"] = LOGIN_OK
        s = _session(api, storage)
        user = asyncio.run(s.login("asha@example.com", "pw"))
        assert user.id == "u-1"
        assert s.auth.access_token == "at-1"
        assert s.error is None

    def test_login_failure_message(self, api):
        api.responses["login"] = ApiError("Invalid credentials", status_code=401)
        s = _session(api)
        assert asyncio.run(s.login("asha@example.com", "bad")) is None
        assert s.error == "Invalid credentials"
        assert s.auth.is_authenticated is False

    def test_restored_on_new_session(self, api, storage):
        api.responses["login"] = LOGIN_OK
        asyncio.run(_session(api, storage).login("asha@example.com", "pw"))
        again = _session(FakeApi(), storage)
        assert again.auth.is_authenticated is True
        assert again.auth.user.name == "Asha"

    def test_logout_clears_qr_scope_and_stores(self, api):
        s = _scanned(api)
        assert s.qr.is_authenticated is True
        assert s.cart.scope == ("H", "B")

        asyncio.run(s.logout())
        assert api.count("logout_current_session") == 1
        assert s.auth.is_authenticated is False
        assert s.qr.is_authenticated is False
        assert s.qr.hotel_id is None
        assert s.cart.has_scope() is False
        assert s.payment.phase == CheckoutPhase.IDLE

    def test_remote_logout_failure_still_logs_out(self, api):
        s = _scanned(api)
        api.responses["logout_all_sessions"] = TransportError(None)
        asyncio.run(s.logout(all_sessions=True))
        assert api.count("logout_all_sessions") == 1
        assert s.auth.is_authenticated is False
        assert s.qr.is_authenticated is False

    def test_logout_when_signed_out_skips_remote(self, api):
        s = _session(api)
        asyncio.run(s.logout())
        assert api.count("logout_current_session") == 0


# ── Scope fan-out ────────────────────────────────────────────

class TestSessionScope:
    def test_scan_pushes_scope_to_every_store(self, api):
        s = _scanned(api)
        for store in (s.menu, s.offers, s.cart, s.coins, s.payment):
            assert store.scope == ("H", "B")

    def test_failed_scan_leaves_scope_empty(self, api):
        api.responses["scan_qr"] = scan_response(authenticated=False)
        s = _session(api)
        s.auth.update_tokens("at-1", "rt-1")
        asyncio.run(s.scan("H", "B", "5"))
        assert s.cart.has_scope() is False

    def test_summary_lists_every_store(self, api):
        s = _scanned(api)
        summary = s.summary()
        assert set(summary) == {"auth", "qr", "menu", "offers", "cart", "coins", "payment"}
        assert summary["payment"]["phase"] == "idle"
        assert "access_token" not in str(summary)


# ── Checkout Composition ─────────────────────────────────────

class TestSessionCheckout:
    def test_checkout_uses_table_and_applied_offer(self, api):
        s = _scanned(api)
        api.responses["get_cart"] = cart_response(cart_item("i1", 100, 2))
        api.responses["get_available_offers"] = {"success": True, "data": OFFERS}
        api.responses["checkout"] = {"success": True, "data": {"order": {"_id": "ord-1", "totalPrice": 200}}}

        async def go():
            await s.cart.initialize_cart()
            await s.offers.initialize_offers_data()
            s.offers.apply_offer(s.offers.find_by_code("WELCOME10"))
            return await s.checkout("upi", "less spicy")

        result = asyncio.run(go())
        assert result["order"]["_id"] == "ord-1"
        req = api.args("checkout")[0][0]
        assert req["tableId"] == "table-5"
        assert req["offerCode"] == "WELCOME10"
        assert req["paymentMethod"] == "upi"
        assert s.cart.items == []

    def test_checkout_without_table(self, api):
        s = _session(api)
        s.apply_scope("H", "B")
        assert asyncio.run(s.checkout()) is None
        assert api.count("checkout") == 0
        assert s.payment.error == "Table not resolved. Please scan the QR code again."
        assert s.payment.phase == CheckoutPhase.CHECKOUT_FAILED

    def test_missing_table_after_earlier_order_marks_failure(self, api):
        api.responses["checkout"] = {"success": True, "data": {"order": {"_id": "ord-1"}}}
        s = _session(api)
        s.apply_scope("H", "B")
        asyncio.run(s.payment.perform_checkout(CheckoutFormData(table_id="table-5")))
        assert s.payment.phase == CheckoutPhase.CHECKED_OUT

        assert asyncio.run(s.checkout()) is None
        assert s.payment.phase == CheckoutPhase.CHECKOUT_FAILED
        assert api.count("checkout") == 1

    def test_checkout_clamps_coins_to_max_usable(self, api):
        s = _scanned(api)
        api.responses["get_cart"] = cart_response(cart_item("i1", 250, 2))
        api.responses["get_max_usable_coins"] = {"success": True, "data": {"orderValue": 500, "maxCoinsUsable": 100}}
        api.responses["checkout"] = {"success": True, "data": {"order": {"_id": "ord-1"}}}

        async def go():
            await s.cart.initialize_cart()
            return await s.checkout(coins_to_use=400)

        asyncio.run(go())
        assert api.args("get_max_usable_coins")[0] == (500, "H", "B")
        assert api.args("checkout")[0][0]["coinsToUse"] == 100

    def test_checkout_without_coin_ceiling_spends_none(self, api):
        s = _scanned(api)
        api.responses["get_max_usable_coins"] = TransportError(None)
        api.responses["checkout"] = {"success": True, "data": {"order": {"_id": "ord-1"}}}
        asyncio.run(s.checkout(coins_to_use=50))
        assert "coinsToUse" not in api.args("checkout")[0][0]

    def test_checkout_without_coins_skips_calculation(self, api):
        s = _scanned(api)
        api.responses["checkout"] = {"success": True, "data": {"order": {"_id": "ord-1"}}}
        asyncio.run(s.checkout())
        assert api.count("get_max_usable_coins") == 0

    def test_initiate_payment_uses_checkout_and_identity(self, api):
        s = _scanned(api)
        api.responses["checkout"] = {
            "success": True,
            "data": {"order": {"_id": "ord-1"}, "pricingBreakdown": {"summary": {"amountToPay": 225}}},
        }
        api.responses["initiate_razorpay_payment"] = {"success": True, "data": {"transactionId": "tx-1"}}

        async def go():
            await s.checkout()
            return await s.initiate_payment()

        asyncio.run(go())
        req = api.args("initiate_razorpay_payment")[0][0]
        assert req["orderId"] == "ord-1"
        assert req["amount"] == 225
        assert req["userEmail"] == "asha@example.com"
        assert s.payment.transaction_id == "tx-1"

    def test_initiate_payment_without_order(self, api):
        s = _session(api)
        assert asyncio.run(s.initiate_payment()) is None
        assert api.count("initiate_razorpay_payment") == 0
        assert s.payment.phase == CheckoutPhase.PAYMENT_FAILED
        assert s.payment.error == "Failed to initiate payment"


# ── Registry ─────────────────────────────────────────────────

class TestSessionRegistry:
    def test_one_session_per_id(self, storage):
        reg = SessionRegistry(api_factory=FakeApi, storage_factory=lambda: storage)
        a = reg.get("s1")
        assert reg.get("s1") is a
        assert reg.get("s2") is not a
        assert reg.get("  ").session_id == "default"

    def test_drop_and_clear(self, storage):
        reg = SessionRegistry(api_factory=FakeApi, storage_factory=lambda: storage)
        a = reg.get("s1")
        reg.drop("s1")
        assert reg.get("s1") is not a
        reg.clear()
        assert reg._sessions == {}
# ── Registry ─────────────────────────────────────────────────

class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _registry(storage, **kw) -> SessionRegistry:
    return SessionRegistry(api_factory=FakeApi, storage_factory=lambda: storage, **kw)


class TestSessionRegistry:
    def test_one_session_per_id(self, storage):
        reg = _registry(storage)
        a = reg.get("s1")
        assert reg.get("s1") is a
        assert reg.get("s2") is not a

    def test_blank_id_is_refused(self, storage):
        reg = _registry(storage)
        for sid in ("", "   ", None):
            with pytest.raises(ValueError):
                reg.get(sid)
        assert len(reg) == 0

    def test_drop_and_clear(self, storage):
        reg = _registry(storage)
        a = reg.get("s1")
        reg.drop("s1")
        assert reg.get("s1") is not a
        reg.clear()
        assert len(reg) == 0

    def test_idle_sessions_are_evicted(self, storage):
        clock = FakeClock()
        reg = _registry(storage, idle_ttl=60, clock=clock)
        reg.get("s1")
        clock.now += 30
        reg.get("s2")
        clock.now += 45
        reg.get("s2")
        assert "s1" not in reg
        assert "s2" in reg

    def test_activity_keeps_session(self, storage):
        clock = FakeClock()
        reg = _registry(storage, idle_ttl=60, clock=clock)
        a = reg.get("s1")
        for _ in range(5):
            clock.now += 50
            assert reg.get("s1") is a

    def test_capacity_drops_least_recent(self, storage):
        clock = FakeClock()
        reg = _registry(storage, idle_ttl=0, max_sessions=2, clock=clock)
        for sid in ("s1", "s2"):
            reg.get(sid)
            clock.now += 1
        reg.get("s1")
        clock.now += 1
        reg.get("s3")
        assert len(reg) == 2
        assert "s2" not in reg
        assert "s1" in reg and "s3" in reg

    def test_many_ids_stay_bounded(self, storage):
        reg = _registry(storage, max_sessions=3)
        for i in range(10):
            reg.get(f"junk-{i}")
        assert len(reg) == 3

    def test_evicted_session_keeps_auth_record(self, storage):
        clock = FakeClock()
        reg = _registry(storage, idle_ttl=60, clock=clock)
        reg.get("s1").auth.update_tokens("at-1", "rt-1")
        clock.now += 120
        reg.get("s2")
        assert "s1" not in reg
        assert reg.get("s1").auth.access_token == "at-1"
