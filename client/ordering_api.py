# client/ordering_api.py
from __future__ import annotations

import asyncio
import os
from typing import Any, Dict, List, Optional

import requests

from client.errors import ApiError, AuthorizationError, TransportError, error_info
from models.api_models import ScanParams
from utils.logging import log_event

DEFAULT_BASE_URL = "http://localhost:8000/api/v1"

# menu filter key -> query param
_MENU_FILTER_KEYS = {
    "food_type": "foodType",
    "is_recommended": "isRecommended",
    "is_best_seller": "isBestSeller",
    "spice_level": "spiceLevel",
    "search": "search",
    "category": "category",
}


def _safe_dict(x: Any) -> Dict[str, Any]:
    return x if isinstance(x, dict) else {}


def _menu_query(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for k, v in (filters or {}).items():
        qk = _MENU_FILTER_KEYS.get(k, k)
        if v is None or v is False or v == "":
            continue
        out[qk] = "true" if v is True else str(v)
    return out


class OrderingApi:
    """
    Backend client for the table-ordering API.

    - requests does the HTTP work; each public coroutine runs the blocking call
      in a worker thread so the event loop is never blocked.
    - the bearer token is read from the bound auth store on every call.
    - a 401 triggers one token refresh (serialized) and one retry.
      If the refresh fails the auth store is cleared.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 15,
        http: Optional[requests.Session] = None,
        auth: Any = None,
        trace_id: Optional[str] = None,
    ):
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()
        self.auth = auth
        self.trace_id = trace_id
        self._refresh_lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_auth(self, auth: Any, trace_id: Optional[str] = None) -> None:
        self.auth = auth
        if trace_id:
            self.trace_id = trace_id

    # ----------------------------
    # transport
    # ----------------------------

    def _access_token(self) -> Optional[str]:
        return getattr(self.auth, "access_token", None) if self.auth is not None else None

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            r = self.http.request(
                method,
                f"{self.base_url}{path}",
                params=params or None,
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(None, payload={"reason": type(e).__name__}) from e

        try:
            data = r.json() if r.content else {}
        except ValueError:
            data = {}
            if r.status_code < 400:
                raise TransportError(None, status_code=r.status_code, payload={"reason": "invalid_json"})

        data = _safe_dict(data)
        if r.status_code >= 400:
            msg = data.get("message") if isinstance(data.get("message"), str) else None
            if r.status_code in (401, 403):
                raise AuthorizationError(msg, status_code=r.status_code, payload=data)
            raise ApiError(msg, status_code=r.status_code, payload=data)
        return data

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        authorized: bool = True,
    ) -> Dict[str, Any]:
        token = self._access_token() if authorized else None
        try:
            return await asyncio.to_thread(self._request, method, path, params=params, body=body, token=token)
        except AuthorizationError as e:
            if not authorized or e.status_code != 401 or self.auth is None:
                log_event(self.trace_id, "api_call_fail", {"method": method, "path": path, **error_info(e)})
                raise
            new_token = await self._refresh(token)
            return await asyncio.to_thread(self._request, method, path, params=params, body=body, token=new_token)
        except ApiError as e:
            log_event(self.trace_id, "api_call_fail", {"method": method, "path": path, **error_info(e)})
            raise

    def _lock(self) -> asyncio.Lock:
        # the lock belongs to the loop that first awaits it
        loop = asyncio.get_running_loop()
        if self._refresh_lock is None or self._lock_loop is not loop:
            self._refresh_lock = asyncio.Lock()
            self._lock_loop = loop
        return self._refresh_lock

    async def _refresh(self, stale_token: Optional[str]) -> str:
        async with self._lock():
            current = self._access_token()
            # another caller already refreshed while we waited
            if current and current != stale_token:
                return current

            refresh_token = getattr(self.auth, "refresh_token", None)
            try:
                data = await asyncio.to_thread(
                    self._request, "POST", "/auth/refresh", body={"refreshToken": refresh_token}
                )
                payload = _safe_dict(data.get("data")) or data
                if data.get("success") is False or not payload.get("accessToken"):
                    raise AuthorizationError(data.get("message") or "Failed to refresh token", status_code=401)
            except ApiError as e:
                log_event(self.trace_id, "token_refresh_fail", error_info(e))
                self.auth.clear_auth()
                if isinstance(e, AuthorizationError):
                    raise
                raise AuthorizationError(e.message, status_code=401, payload=e.payload) from e

            self.auth.update_tokens(payload["accessToken"], payload.get("refreshToken") or refresh_token)
            log_event(self.trace_id, "token_refreshed", {})
            return payload["accessToken"]

    # ----------------------------
    # auth
    # ----------------------------

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        return await self._call("POST", "/auth/user/login", body={"email": email, "password": password}, authorized=False)

    async def logout_current_session(self) -> Dict[str, Any]:
        return await self._call("POST", "/auth/user/logout")

    async def logout_all_sessions(self) -> Dict[str, Any]:
        return await self._call("POST", "/auth/user/logout-all")

    # ----------------------------
    # scan / menu / offers
    # ----------------------------

    async def scan_qr(self, params: ScanParams) -> Dict[str, Any]:
        return await self._call("GET", "/scan", params=params.to_query())

    async def get_menu_items(self, hotel_id: str, branch_id: str, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._call("GET", f"/user/menu/location/{hotel_id}/{branch_id}", params=_menu_query(filters))

    async def get_categories(self, hotel_id: str, branch_id: str, food_type: Optional[str] = None) -> Dict[str, Any]:
        params = {"foodType": food_type} if food_type else None
        return await self._call("GET", f"/user/menu/categories/hotel/{hotel_id}/{branch_id}/", params=params)

    async def get_available_offers(self, hotel_id: str, branch_id: str) -> Dict[str, Any]:
        # public endpoint, sent without credentials
        return await self._call("GET", f"/user/offers/available/{hotel_id}/{branch_id}", authorized=False)

    # ----------------------------
    # cart
    # ----------------------------

    async def get_cart(self, hotel_id: str, branch_id: str) -> Dict[str, Any]:
        return await self._call("GET", f"/user/cart/{hotel_id}/{branch_id}")

    async def get_cart_summary(self, hotel_id: str, branch_id: str) -> Dict[str, Any]:
        return await self._call("GET", f"/user/cart/summary/{hotel_id}/{branch_id}")

    async def add_to_cart(self, product_id: str, quantity: int, hotel_id: str, branch_id: str) -> Dict[str, Any]:
        body = {"foodItem": product_id, "quantity": quantity, "hotel": hotel_id, "branch": branch_id}
        return await self._call("POST", "/user/cart/add", body=body)

    async def update_cart_item(self, item_id: str, quantity: int, hotel_id: str, branch_id: str) -> Dict[str, Any]:
        body = {"quantity": quantity, "hotelId": hotel_id, "branchId": branch_id}
        return await self._call("PUT", f"/user/cart/item/{item_id}", body=body)

    async def remove_cart_item(self, item_id: str, hotel_id: str, branch_id: str) -> Dict[str, Any]:
        return await self._call("DELETE", f"/user/cart/item/{item_id}", body={"hotelId": hotel_id, "branchId": branch_id})

    async def clear_cart(self, hotel_id: str, branch_id: str) -> Dict[str, Any]:
        return await self._call("DELETE", "/user/cart/clear", body={"hotelId": hotel_id, "branchId": branch_id})

    async def bulk_update_cart(self, updates: List[Dict[str, Any]], hotel_id: str, branch_id: str) -> Dict[str, Any]:
        body = {"updates": updates, "hotelId": hotel_id, "branchId": branch_id}
        return await self._call("PUT", "/user/cart/bulk-update", body=body)

    # ----------------------------
    # coins
    # ----------------------------

    async def get_coin_balance(self) -> Dict[str, Any]:
        return await self._call("GET", "/user/coins/balance")

    async def get_max_usable_coins(self, order_value: float, hotel_id: str, branch_id: str) -> Dict[str, Any]:
        params = {"orderValue": order_value, "hotelId": hotel_id, "branchId": branch_id}
        return await self._call("GET", "/user/coins/max-usable", params=params)

    async def calculate_coin_discount(
        self, order_value: float, coins_to_use: int, hotel_id: str, branch_id: str
    ) -> Dict[str, Any]:
        body = {"orderValue": order_value, "coinsToUse": coins_to_use, "hotelId": hotel_id, "branchId": branch_id}
        return await self._call("POST", "/user/coins/calculate-discount", body=body)

    # ----------------------------
    # checkout / payment
    # ----------------------------

    async def checkout(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call("POST", "/user/cart/checkout", body=request)

    async def initiate_razorpay_payment(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call("POST", "/payment/razorpay/initiate", body=request)

    async def check_payment_status(self, transaction_id: str) -> Dict[str, Any]:
        return await self._call("GET", f"/payment/razorpay/status/{transaction_id}")


def default_api_client(base_url: Optional[str] = None) -> OrderingApi:
    """
    base_url: argument, else env ORDERING_API_BASE_URL, else the local dev backend.
    """
    if not base_url:
        base_url = os.getenv("ORDERING_API_BASE_URL", DEFAULT_BASE_URL)
    timeout = float(os.getenv("ORDERING_API_TIMEOUT", "15"))
    return OrderingApi(base_url, timeout=timeout)
