# domain/ordering/checkout.py
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from client.errors import error_info, user_message
from domain.ordering.messages import message
from domain.ordering.scope import ScopedStore
from models.api_models import TERMINAL_PAYMENT_STATUSES, CheckoutFormData, PaymentUserDetails
from utils.logging import log_event


class CheckoutPhase(str, Enum):
    IDLE = "idle"
    CHECKING_OUT = "checking_out"
    CHECKED_OUT = "checked_out"
    CHECKOUT_FAILED = "checkout_failed"
    INITIATING_PAYMENT = "initiating_payment"
    PAYMENT_READY = "payment_ready"
    PAYMENT_FAILED = "payment_failed"
    CONFIRMING_STATUS = "confirming_status"
    SETTLED = "settled"
    STATUS_FAILED = "status_failed"


def _safe_dict(x: Any) -> Dict[str, Any]:
    return x if isinstance(x, dict) else {}


def is_terminal_status(status: Any) -> bool:
    return isinstance(status, str) and status.lower() in TERMINAL_PAYMENT_STATUSES


def build_checkout_request(hotel_id: str, branch_id: str, form: CheckoutFormData) -> Dict[str, Any]:
    req: Dict[str, Any] = {
        "hotelId": hotel_id,
        "branchId": branch_id,
        "tableId": form.table_id,
        "paymentMethod": form.payment_method,
    }
    # optional fields are left out rather than sent empty
    if form.customer_note:
        req["customerNote"] = form.customer_note
    if form.coins_to_use:
        req["coinsToUse"] = form.coins_to_use
    if form.offer_code:
        req["offerCode"] = form.offer_code
    return req


class CheckoutOrchestrator(ScopedStore):
    """
    Checkout and Razorpay round trip for one order.

    Three snapshots are kept apart (checkout result, payment session, payment
    status) since each is fetched at a different time and can fail on its own.
    Every step has its own loading flag. Failures set `error` and return None.
    """

    def __init__(self, api: Any, *, session_id: str = "default"):
        super().__init__(api, session_id=session_id)
        self.checkout_data: Optional[Dict[str, Any]] = None
        self.checkout_form_data: Optional[CheckoutFormData] = None
        self.payment_init_data: Optional[Dict[str, Any]] = None
        self.payment_status_data: Optional[Dict[str, Any]] = None

        self.is_checkout_loading: bool = False
        self.is_payment_initiating: bool = False
        self.is_payment_status_loading: bool = False

        self.error: Optional[str] = None
        self.phase: CheckoutPhase = CheckoutPhase.IDLE

    # ----------------------------
    # derived views of the snapshots
    # ----------------------------

    @property
    def order_id(self) -> Optional[str]:
        order = _safe_dict(_safe_dict(self.checkout_data).get("order"))
        oid = order.get("_id") or order.get("id")
        return str(oid) if oid else None

    @property
    def amount_to_pay(self) -> Optional[float]:
        data = _safe_dict(self.checkout_data)
        summary = _safe_dict(_safe_dict(data.get("pricingBreakdown")).get("summary"))
        amount = summary.get("amountToPay")
        if amount is None:
            amount = _safe_dict(data.get("order")).get("totalPrice")
        return float(amount) if isinstance(amount, (int, float)) else None

    @property
    def payment_required(self) -> bool:
        return bool(_safe_dict(_safe_dict(self.checkout_data).get("checkout")).get("paymentRequired"))

    @property
    def transaction_id(self) -> Optional[str]:
        tx = _safe_dict(self.payment_init_data).get("transactionId")
        return str(tx) if tx else None

    @property
    def payment_status(self) -> Optional[str]:
        status = _safe_dict(self.payment_status_data).get("status")
        return status if isinstance(status, str) else None

    # ----------------------------
    # actions
    # ----------------------------

    def set_hotel_and_branch(self, hotel_id: str, branch_id: str) -> None:
        self.set_scope(hotel_id, branch_id)

    def set_checkout_form_data(self, form: CheckoutFormData) -> None:
        self.checkout_form_data = form

    def reject(self, phase: CheckoutPhase, error: str) -> None:
        """
        Refuse a step before it reaches the backend. phase is the failed phase of that step.
        """
        self.error = error
        self.phase = phase
        log_event(self.session_id, "checkout_rejected", {"phase": phase, "error": error})

    async def perform_checkout(self, form: CheckoutFormData) -> Optional[Dict[str, Any]]:
        if not self.has_scope():
            self.reject(CheckoutPhase.CHECKOUT_FAILED, message("scope.missing"))
            return None

        request = build_checkout_request(self.hotel_id, self.branch_id, form)
        self.is_checkout_loading = True
        self.error = None
        self.phase = CheckoutPhase.CHECKING_OUT
        log_event(self.session_id, "checkout_start", request)
        try:
            resp = await self.api.checkout(request)
        except Exception as e:
            self.error = user_message(e, message("checkout.failed"))
            self.is_checkout_loading = False
            self.phase = CheckoutPhase.CHECKOUT_FAILED
            log_event(self.session_id, "checkout_fail", error_info(e))
            return None

        data = _safe_dict(resp).get("data")
        self.checkout_data = data if isinstance(data, dict) else {}
        self.checkout_form_data = form
        self.is_checkout_loading = False
        self.phase = CheckoutPhase.CHECKED_OUT
        log_event(self.session_id, "checkout_ok", {"order_id": self.order_id, "payment_required": self.payment_required})
        return self.checkout_data

    async def initiate_payment(self, order_id: str, amount: float, user: PaymentUserDetails) -> Optional[Dict[str, Any]]:
        request = {
            "orderId": order_id,
            "amount": amount,
            "userId": user.user_id,
            "userPhone": user.user_phone,
            "userName": user.user_name,
            "userEmail": user.user_email,
        }
        self.is_payment_initiating = True
        self.error = None
        self.phase = CheckoutPhase.INITIATING_PAYMENT
        try:
            resp = await self.api.initiate_razorpay_payment(request)
        except Exception as e:
            self.error = user_message(e, message("payment.initiate"))
            self.is_payment_initiating = False
            self.phase = CheckoutPhase.PAYMENT_FAILED
            log_event(self.session_id, "payment_initiate_fail", {"order_id": order_id, **error_info(e)})
            return None

        data = _safe_dict(resp).get("data")
        self.payment_init_data = data if isinstance(data, dict) else {}
        self.is_payment_initiating = False
        self.phase = CheckoutPhase.PAYMENT_READY
        log_event(self.session_id, "payment_initiated", {"order_id": order_id, "transaction_id": self.transaction_id})
        return self.payment_init_data

    async def check_payment_status(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        """
        Idempotent read. The latest resolved response replaces the previous one.
        Polling cadence belongs to the caller (see poll_payment_status).
        """
        self.is_payment_status_loading = True
        self.error = None
        self.phase = CheckoutPhase.CONFIRMING_STATUS
        try:
            resp = await self.api.check_payment_status(transaction_id)
        except Exception as e:
            self.error = user_message(e, message("payment.status"))
            self.is_payment_status_loading = False
            self.phase = CheckoutPhase.STATUS_FAILED
            log_event(self.session_id, "payment_status_fail", {"transaction_id": transaction_id, **error_info(e)})
            return None

        data = _safe_dict(resp).get("data")
        self.payment_status_data = data if isinstance(data, dict) else {}
        self.is_payment_status_loading = False
        if is_terminal_status(self.payment_status):
            self.phase = CheckoutPhase.SETTLED
        log_event(self.session_id, "payment_status", {"transaction_id": transaction_id, "status": self.payment_status})
        return self.payment_status_data

    async def poll_payment_status(
        self,
        transaction_id: str,
        *,
        interval: float = 3.0,
        timeout: float = 120.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> Optional[Dict[str, Any]]:
        """
        Caller-side polling loop: stop on a terminal status or once timeout is spent.
        Returns the last snapshot (None if no call ever succeeded).
        """
        waited = 0.0
        last: Optional[Dict[str, Any]] = None
        while True:
            data = await self.check_payment_status(transaction_id)
            if data is not None:
                last = data
                if is_terminal_status(data.get("status")):
                    return data
            if waited >= timeout:
                log_event(self.session_id, "payment_poll_timeout", {"transaction_id": transaction_id, "waited": waited})
                return last
            await sleep(interval)
            waited += interval

    def clear_checkout_data(self) -> None:
        self.checkout_data = None
        self.checkout_form_data = None
        self.payment_init_data = None
        self.payment_status_data = None
        self.error = None
        self.phase = CheckoutPhase.IDLE

    def clear_error(self) -> None:
        self.error = None
