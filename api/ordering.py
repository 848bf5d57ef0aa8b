from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse

from domain.ordering.menu_store import HOME, VIEWS
from domain.ordering.messages import message
from models.api_models import (
    AddCartItemRequest,
    ApplyOfferRequest,
    CheckoutRequest,
    CoinDiscountRequest,
    InitiatePaymentRequest,
    LoginRequest,
    StoreResponse,
    UpdateCartItemRequest,
)
from session.context import OrderingSession, SessionRegistry, new_session_id
from utils.logging import log_event

SESSION_HEADER = "X-Client-Session"

router = APIRouter()
scan_router = APIRouter()
registry = SessionRegistry()

_SCAN_STATUS = {
    "ok": 200,
    "missing_params": 400,
    "no_token": 401,
    "not_authenticated": 401,
    "session_expired": 401,
    "failed": 502,
    "stale": 409,
}


def get_registry() -> SessionRegistry:
    return registry


def get_session(
    x_client_session: Optional[str] = Header(default=None),
    reg: SessionRegistry = Depends(get_registry),
) -> OrderingSession:
    sid = (x_client_session or "").strip()
    if not sid:
        raise HTTPException(status_code=400, detail={"message": f"{SESSION_HEADER} header is required"})
    return reg.get(sid)


def get_or_start_session(
    x_client_session: Optional[str] = Header(default=None),
    reg: SessionRegistry = Depends(get_registry),
) -> OrderingSession:
    """
    QR codes are opened by a bare browser, so a missing id starts a new session.
    The id goes back in the response header.
    """
    return reg.get((x_client_session or "").strip() or new_session_id())


def _respond(ok: bool, data: Any = None, error: Optional[str] = None, state: Optional[Dict[str, Any]] = None, status_code: int = 200) -> JSONResponse:
    if not ok and status_code == 200:
        status_code = 400
    body = StoreResponse(ok=ok, data=data, error=error, state=state or {})
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _cart_view(s: OrderingSession) -> Dict[str, Any]:
    return {
        "hotel_id": s.cart.hotel_id,
        "branch_id": s.cart.branch_id,
        "items": [it.model_dump() for it in s.cart.items],
        "total_items": s.cart.total_items,
        "total_amount": s.cart.total_amount,
        "should_show_cart": s.cart.should_show_cart,
        "summary": s.cart.cart_summary.model_dump() if s.cart.cart_summary else None,
    }


def _offers_view(s: OrderingSession) -> Dict[str, Any]:
    applied = s.offers.applied_offer
    return {
        "offers": [o.model_dump() for o in s.offers.offers],
        "applied_offer": applied.model_dump() if applied else None,
        "estimated_discount": applied.discount_for(s.cart.total_amount) if applied else 0,
    }


# ----------------------------
# QR entry point
# ----------------------------

@scan_router.get("/scan")
async def scan(
    hotelId: Optional[str] = Query(default=None),
    branchId: Optional[str] = Query(default=None),
    tableNo: Optional[str] = Query(default=None),
    s: OrderingSession = Depends(get_or_start_session),
):
    trace_id = uuid.uuid4().hex[:12]
    outcome = await s.scan(hotelId, branchId, tableNo)
    log_event(trace_id, "scan_response", {"session_id": s.session_id, "reason": outcome.reason})

    headers: Dict[str, str] = {SESSION_HEADER: s.session_id}
    if outcome.redirect_to:
        # delayed redirects let the error render first
        headers["Refresh"] = f"{int(outcome.redirect_delay)}; url={outcome.redirect_to}"

    body = StoreResponse(
        ok=outcome.authenticated,
        data={
            "authenticated": outcome.authenticated,
            "redirect_to": outcome.redirect_to,
            "redirect_delay": outcome.redirect_delay,
            "reason": outcome.reason,
            "hotel": s.qr.hotel,
            "branch": s.qr.branch,
            "table": s.qr.table,
        },
        error=outcome.error,
        state=s.summary(),
    )
    return JSONResponse(status_code=_SCAN_STATUS.get(outcome.reason, 400), content=body.model_dump(mode="json"), headers=headers)


# ----------------------------
# auth
# ----------------------------

@router.post("/auth/login")
async def login(req: LoginRequest, s: OrderingSession = Depends(get_session)):
    user = await s.login(req.email, req.password)
    if user is None:
        return _respond(False, error=s.error, status_code=401)
    return _respond(True, data=user.model_dump(by_alias=True))


@router.post("/auth/logout")
async def logout(
    all_sessions: bool = Query(default=False),
    s: OrderingSession = Depends(get_session),
    reg: SessionRegistry = Depends(get_registry),
):
    await s.logout(all_sessions=all_sessions)
    state = s.summary()
    reg.drop(s.session_id)
    return _respond(True, state=state)


# ----------------------------
# menu
# ----------------------------

@router.get("/menu")
async def menu(
    view: str = Query(default=HOME),
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    food_type: Optional[str] = Query(default=None),
    s: OrderingSession = Depends(get_session),
):
    if view not in VIEWS:
        return _respond(False, error=f"unknown view: {view}", status_code=404)

    await s.menu.initialize_view(view)
    if category is not None:
        await s.menu.filter_by_category(view, category or None)
    if search is not None:
        await s.menu.search(search)
    if food_type is not None:
        await s.menu.filter_by_type(food_type or None)

    v = s.menu.view(view)
    data = {"items": v.items, "categories": v.categories, "selected_category": v.selected_category, "stats": s.menu.stats}
    return _respond(v.error is None, data=data, error=v.error)


# ----------------------------
# cart
# ----------------------------

@router.get("/cart")
async def get_cart(s: OrderingSession = Depends(get_session)):
    await s.cart.initialize_cart()
    return _respond(s.cart.error is None, data=_cart_view(s), error=s.cart.error)


@router.get("/cart/page")
async def cart_page(s: OrderingSession = Depends(get_session)):
    await s.cart.initialize_cart_page()
    return _respond(s.cart.error is None, data=_cart_view(s), error=s.cart.error)


@router.delete("/cart")
async def clear_cart(s: OrderingSession = Depends(get_session)):
    items = await s.cart.clear_cart()
    return _respond(items is not None, data=_cart_view(s), error=s.cart.error)


@router.post("/cart/items")
async def add_cart_item(req: AddCartItemRequest, s: OrderingSession = Depends(get_session)):
    items = await s.cart.add_to_cart(req.product_id, req.quantity)
    return _respond(items is not None, data=_cart_view(s), error=s.cart.error)


@router.patch("/cart/items/{item_id}")
async def update_cart_item(item_id: str, req: UpdateCartItemRequest, s: OrderingSession = Depends(get_session)):
    items = await s.cart.update_item_quantity(item_id, req.quantity)
    return _respond(items is not None, data=_cart_view(s), error=s.cart.error)


@router.delete("/cart/items/{item_id}")
async def remove_cart_item(item_id: str, s: OrderingSession = Depends(get_session)):
    items = await s.cart.remove_item(item_id)
    return _respond(items is not None, data=_cart_view(s), error=s.cart.error)


# ----------------------------
# offers
# ----------------------------

@router.get("/offers")
async def list_offers(s: OrderingSession = Depends(get_session)):
    await s.offers.initialize_offers_data()
    return _respond(s.offers.error is None, data=_offers_view(s), error=s.offers.error)


@router.post("/offers/apply")
async def apply_offer(req: ApplyOfferRequest, s: OrderingSession = Depends(get_session)):
    await s.offers.initialize_offers_data()
    offer = s.offers.find_by_code(req.code)
    if offer is None:
        return _respond(False, error=s.offers.error or message("offers.unknown_code", code=req.code), status_code=404)
    s.offers.select_offer(offer)
    s.offers.apply_offer(offer)
    return _respond(True, data=_offers_view(s))


@router.delete("/offers/applied")
async def remove_applied_offer(s: OrderingSession = Depends(get_session)):
    s.offers.remove_applied_offer()
    return _respond(True, data=_offers_view(s))


# ----------------------------
# coins
# ----------------------------

def _coins_view(s: OrderingSession) -> Dict[str, Any]:
    c = s.coins
    return {
        "balance": c.balance.model_dump() if c.balance else None,
        "max_usable": c.max_usable.model_dump() if c.max_usable else None,
        "discount": c.discount.model_dump() if c.discount else None,
    }


@router.get("/coins")
async def coins(s: OrderingSession = Depends(get_session)):
    await s.coins.fetch_coin_balance()
    if s.coins.error is None and s.cart.has_scope():
        await s.coins.calculate_max_usable_coins(s.cart.total_amount)
    error = s.coins.error or s.coins.calculation_error
    return _respond(error is None, data=_coins_view(s), error=error)


@router.post("/coins/discount")
async def coin_discount(req: CoinDiscountRequest, s: OrderingSession = Depends(get_session)):
    result = await s.coins.calculate_discount(s.cart.total_amount, req.coins_to_use)
    return _respond(result is not None, data=_coins_view(s), error=s.coins.calculation_error)


# ----------------------------
# checkout / payment
# ----------------------------

@router.post("/checkout")
async def checkout(req: CheckoutRequest, s: OrderingSession = Depends(get_session)):
    result = await s.checkout(req.payment_method, req.customer_note, req.coins_to_use)
    return _respond(result is not None, data=result, error=s.payment.error, state={"phase": s.payment.phase.value})


@router.post("/payment/initiate")
async def initiate_payment(req: InitiatePaymentRequest, s: OrderingSession = Depends(get_session)):
    result = await s.initiate_payment(req.order_id, req.amount)
    return _respond(result is not None, data=result, error=s.payment.error, state={"phase": s.payment.phase.value})


@router.get("/payment/status/{transaction_id}")
async def payment_status(transaction_id: str, s: OrderingSession = Depends(get_session)):
    result = await s.payment.check_payment_status(transaction_id)
    return _respond(result is not None, data=result, error=s.payment.error, state={"phase": s.payment.phase.value})
