"""
QR session store: scan flow, redirects, and clearing on logout.
"""

import asyncio

import pytest

from client.errors import ApiError, AuthorizationError, TransportError
from conftest import scan_response
from models.api_models import Identity
from session.auth_store import AuthSessionStore
from session.qr_store import HOME_PATH, SIGNIN_PATH, QRSessionStore


def _signed_in() -> AuthSessionStore:
    auth = AuthSessionStore()
    auth.login(Identity(id="u-1", name="Asha"), "at-1", "rt-1")
    return auth


def _store(api, auth=None, **kw):
    navigated = []
    store = QRSessionStore(api, auth or _signed_in(), navigate=navigated.append, **kw)
    return store, navigated


# ── Parameter Validation ─────────────────────────────────────

class TestScanParams:
    @pytest.mark.parametrize("h,b,t", [
        (None, "B", "5"),
        ("H", "", "5"),
        ("H", "B", None),
        ("  ", "B", "5"),
    ])
    def test_missing_param_makes_no_call(self, api, h, b, t):
        store, navigated = _store(api)
        outcome = asyncio.run(store.scan(h, b, t))

        assert api.calls == []
        assert store.error == "Invalid QR code: Missing required parameters"
        assert store.is_authenticated is False
        assert outcome.reason == "missing_params"
        assert outcome.redirect_to == SIGNIN_PATH
        assert outcome.redirect_delay == 3.0
        # delayed: nothing navigated synchronously
        assert navigated == []

    def test_delayed_redirect_fires_later(self, api):
        store, navigated = _store(api, redirect_delay=0.01)

        async def go():
            await store.scan("H", None, "5")
            assert navigated == []
            await asyncio.sleep(0.05)

        asyncio.run(go())
        assert navigated == [SIGNIN_PATH]


# ── Scan Outcomes ────────────────────────────────────────────

class TestScanOutcomes:
    def test_no_token_redirects_immediately(self, api):
        store, navigated = _store(api, auth=AuthSessionStore())
        outcome = asyncio.run(store.scan("H", "B", "5"))

        assert api.count("scan_qr") == 0
        assert outcome.reason == "no_token"
        assert outcome.redirect_delay == 0
        assert navigated == [SIGNIN_PATH]
        assert store.error is None
        assert store.is_authenticated is False
        assert store.table is None

    def test_successful_scan_sets_scope_and_goes_home(self, api):
        api.responses["scan_qr"] = scan_response()
        store, navigated = _store(api)
        outcome = asyncio.run(store.scan("H", "B", "5"))

        assert outcome.authenticated is True
        assert outcome.reason == "ok"
        assert navigated == [HOME_PATH]
        assert store.is_authenticated is True
        assert store.is_session_authenticated() is True
        assert (store.hotel_id, store.branch_id) == ("H", "B")
        assert store.table_id == "table-5"
        assert store.hotel["name"] == "Hotel Saffron"
        assert store.error is None
        assert store.is_loading is False

        params = api.args("scan_qr")[0][0]
        assert params.to_query() == {"hotelId": "H", "branchId": "B", "tableNo": "5"}

    def test_not_authenticated_response_clears_scope(self, api):
        api.responses["scan_qr"] = scan_response(authenticated=False)
        store, navigated = _store(api)
        outcome = asyncio.run(store.scan("H", "B", "5"))

        assert outcome.reason == "not_authenticated"
        assert navigated == [SIGNIN_PATH]
        assert store.error == "Authentication failed. Please sign in to continue."
        assert store.is_authenticated is False
        assert store.hotel is None

    def test_unsuccessful_body_is_not_authenticated(self, api):
        api.responses["scan_qr"] = scan_response(success=False)
        store, _ = _store(api)
        outcome = asyncio.run(store.scan("H", "B", "5"))
        assert outcome.authenticated is False
        assert store.is_authenticated is False

    def test_unauthorized_is_session_expired(self, api):
        api.responses["scan_qr"] = AuthorizationError("jwt expired", status_code=401)
        store, navigated = _store(api)
        outcome = asyncio.run(store.scan("H", "B", "5"))

        assert outcome.reason == "session_expired"
        assert outcome.redirect_delay == 0
        assert navigated == [SIGNIN_PATH]
        assert store.error == "Session expired. Please sign in again."

    def test_backend_message_is_shown_verbatim(self, api):
        api.responses["scan_qr"] = ApiError("Table 5 is disabled", status_code=400)
        store, navigated = _store(api)
        outcome = asyncio.run(store.scan("H", "B", "5"))

        assert outcome.reason == "failed"
        assert outcome.error == "Table 5 is disabled"
        assert outcome.redirect_delay == 3.0
        assert navigated == []

    def test_transport_failure_uses_fallback(self, api):
        api.responses["scan_qr"] = TransportError(None)
        store, _ = _store(api)
        asyncio.run(store.scan("H", "B", "5"))
        assert store.error == "Failed to process QR scan"
        assert store.is_loading is False

    def test_cleared_while_in_flight_is_discarded(self, api):
        api.responses["scan_qr"] = scan_response()
        store, navigated = _store(api)

        async def go():
            api.gates["scan_qr"] = asyncio.Event()
            task = asyncio.ensure_future(store.scan("H", "B", "5"))
            await asyncio.sleep(0)
            store.clear_scan_data()
            api.gates["scan_qr"].set()
            return await task

        outcome = asyncio.run(go())
        assert outcome.stale is True
        assert store.is_authenticated is False
        assert navigated == []

    def test_newer_scan_wins(self, api):
        api.responses["scan_qr"] = lambda params: scan_response(table_no=int(params.table_no))
        store, _ = _store(api)

        async def go():
            api.gates["scan_qr"] = asyncio.Event()
            first = asyncio.ensure_future(store.scan("H", "B", "5"))
            await asyncio.sleep(0)
            second = asyncio.ensure_future(store.scan("H", "B", "7"))
            await asyncio.sleep(0)
            api.gates["scan_qr"].set()
            return await first, await second

        first, second = asyncio.run(go())
        assert first.stale is True
        assert second.authenticated is True
        assert store.scan_params.table_no == "7"
        assert store.table["tableNumber"] == 7


# ── Clearing ─────────────────────────────────────────────────

class TestScanClearing:
    def test_logout_clears_scope(self, api):
        api.responses["scan_qr"] = scan_response()
        auth = _signed_in()
        store, _ = _store(api, auth=auth)
        auth.subscribe(store.on_auth_changed)
        asyncio.run(store.scan("H", "B", "5"))
        assert store.is_authenticated is True

        auth.logout()
        assert store.is_authenticated is False
        assert store.scan_params is None
        assert store.table is None

    def test_clear_is_idempotent(self, api):
        store, _ = _store(api)
        store.clear_scan_data()
        store.clear_scan_data()
        assert store.is_authenticated is False
        assert store.error is None

    def test_session_needs_both_flags(self, api):
        api.responses["scan_qr"] = scan_response()
        auth = _signed_in()
        store, _ = _store(api, auth=auth)
        asyncio.run(store.scan("H", "B", "5"))

        # unsubscribed: scope stays but the identity is gone
        auth.logout()
        assert store.is_authenticated is True
        assert store.is_session_authenticated() is False
