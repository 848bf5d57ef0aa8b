# session/qr_store.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from client.errors import AuthorizationError, error_info, user_message
from domain.ordering.messages import message
from models.api_models import ScanParams, ScanResult
from utils.logging import log_event

SIGNIN_PATH = "/auth/signin"
HOME_PATH = "/home"


@dataclass(frozen=True)
class ScanOutcome:
    authenticated: bool
    redirect_to: Optional[str] = None
    redirect_delay: float = 0
    error: Optional[str] = None
    stale: bool = False
    reason: str = "ok"


def _safe_str(x: Any) -> str:
    return x if isinstance(x, str) else "" if x is None else str(x)


class QRSessionStore:
    """
    Dining context (hotel / branch / table) resolved from a QR scan.

    The scope is authenticated only when the scan endpoint said so explicitly.
    It holds no ownership over the identity: the owner subscribes
    on_auth_changed to the auth store so the scope clears itself on logout.
    """

    def __init__(
        self,
        api: Any,
        auth: Any,
        *,
        session_id: str = "default",
        navigate: Optional[Callable[[str], None]] = None,
        redirect_delay: float = 3.0,
    ):
        self.api = api
        self.auth = auth
        self.session_id = session_id
        self.navigate = navigate
        self.redirect_delay = redirect_delay
        self._reset()

    def _reset(self) -> None:
        self.is_authenticated: bool = False
        self.user: Optional[Dict[str, Any]] = None
        self.table: Optional[Dict[str, Any]] = None
        self.hotel: Optional[Dict[str, Any]] = None
        self.branch: Optional[Dict[str, Any]] = None
        self.menu: Optional[Dict[str, Any]] = None
        self.scan_data: Optional[Dict[str, Any]] = None
        self.scan_params: Optional[ScanParams] = None
        self.current_scan_params: Optional[ScanParams] = None
        self.is_loading: bool = False
        self.error: Optional[str] = None

    # ----------------------------
    # scope accessors
    # ----------------------------

    @property
    def hotel_id(self) -> Optional[str]:
        return self.scan_params.hotel_id if self.scan_params else None

    @property
    def branch_id(self) -> Optional[str]:
        return self.scan_params.branch_id if self.scan_params else None

    @property
    def table_id(self) -> Optional[str]:
        table = self.table or {}
        return _safe_str(table.get("id") or table.get("_id")).strip() or None

    def is_session_authenticated(self) -> bool:
        return self.is_authenticated and bool(getattr(self.auth, "is_authenticated", False))

    # ----------------------------
    # actions
    # ----------------------------

    def set_current_scan_params(self, params: ScanParams) -> None:
        self.current_scan_params = params

    def set_scan_result(self, result: ScanResult, params: ScanParams) -> None:
        self.is_authenticated = bool(result.authenticated)
        self.user = result.user
        self.table = result.table
        self.hotel = result.hotel
        self.branch = result.branch
        self.menu = result.menu
        self.scan_data = result.scan_data
        self.scan_params = params
        self.error = None
        self.is_loading = False

    def set_error(self, error: Optional[str]) -> None:
        self.error = error
        self.is_loading = False

    def clear_scan_data(self) -> None:
        self._reset()

    def on_auth_changed(self, auth: Any) -> None:
        if not getattr(auth, "is_authenticated", False) and self.is_authenticated:
            log_event(self.session_id, "qr_scope_cleared_on_logout", {"hotel_id": self.hotel_id, "branch_id": self.branch_id})
            self.clear_scan_data()

    # ----------------------------
    # scan flow
    # ----------------------------

    def _redirect(self, path: str, delay: float = 0) -> None:
        if self.navigate is None:
            return
        if delay > 0:
            asyncio.get_running_loop().call_later(delay, self.navigate, path)
        else:
            self.navigate(path)

    def _fail(self, error: Optional[str], reason: str, *, delayed: bool) -> ScanOutcome:
        delay = self.redirect_delay if delayed else 0
        self._redirect(SIGNIN_PATH, delay)
        return ScanOutcome(
            authenticated=False, redirect_to=SIGNIN_PATH, redirect_delay=delay, error=error, reason=reason
        )

    async def scan(self, hotel_id: Optional[str], branch_id: Optional[str], table_no: Optional[str]) -> ScanOutcome:
        hotel_id = _safe_str(hotel_id).strip()
        branch_id = _safe_str(branch_id).strip()
        table_no = _safe_str(table_no).strip()

        if not hotel_id or not branch_id or not table_no:
            err = message("scan.missing_params")
            self.set_error(err)
            log_event(self.session_id, "qr_scan_invalid", {
                "has_hotel_id": bool(hotel_id), "has_branch_id": bool(branch_id), "has_table_no": bool(table_no),
            })
            return self._fail(err, "missing_params", delayed=True)

        params = ScanParams(hotelId=hotel_id, branchId=branch_id, tableNo=table_no)
        self.set_current_scan_params(params)
        self.is_loading = True

        if not getattr(self.auth, "access_token", None):
            self.clear_scan_data()
            log_event(self.session_id, "qr_scan_no_token", params.to_query())
            return self._fail(None, "no_token", delayed=False)

        log_event(self.session_id, "qr_scan_start", params.to_query())
        try:
            resp = await self.api.scan_qr(params)
            data = resp.get("data") if isinstance(resp, dict) else None
            result = ScanResult.model_validate(data) if isinstance(data, dict) else ScanResult()
            success = bool(resp.get("success")) if isinstance(resp, dict) else False
        except AuthorizationError as e:
            if self.current_scan_params != params:
                return ScanOutcome(authenticated=False, stale=True, reason="stale")
            self.clear_scan_data()
            err = message("scan.session_expired")
            self.set_error(err)
            log_event(self.session_id, "qr_scan_unauthorized", error_info(e))
            return self._fail(err, "session_expired", delayed=False)
        except Exception as e:
            if self.current_scan_params != params:
                return ScanOutcome(authenticated=False, stale=True, reason="stale")
            err = user_message(e, message("scan.failed"))
            self.set_error(err)
            log_event(self.session_id, "qr_scan_fail", error_info(e))
            return self._fail(err, "failed", delayed=True)

        # cleared or superseded while the call was in flight
        if self.current_scan_params != params:
            log_event(self.session_id, "qr_scan_stale", params.to_query())
            return ScanOutcome(authenticated=False, stale=True, reason="stale")

        if success and result.authenticated:
            self.set_scan_result(result, params)
            log_event(self.session_id, "qr_scan_ok", {**params.to_query(), "table_id": self.table_id})
            self._redirect(HOME_PATH)
            return ScanOutcome(authenticated=True, redirect_to=HOME_PATH)

        self.clear_scan_data()
        err = message("scan.not_authenticated")
        self.set_error(err)
        log_event(self.session_id, "qr_scan_not_authenticated", {"success": success})
        return self._fail(err, "not_authenticated", delayed=False)
