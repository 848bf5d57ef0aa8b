# domain/ordering/coins_store.py
from __future__ import annotations

from typing import Any, Optional

from client.errors import error_info, user_message
from domain.ordering.messages import message
from domain.ordering.scope import Scope, ScopedStore
from models.api_models import CoinBalance, CoinDiscount, MaxUsableCoins
from utils.logging import log_event


def _data(resp: Any) -> Any:
    return resp.get("data") if isinstance(resp, dict) else None


class CoinsStore(ScopedStore):
    """
    Loyalty coins of the signed-in diner.

    The balance belongs to the user. Max-usable and discount calculations
    belong to an order at the current hotel/branch and are dropped when the
    scope changes. Checkout never spends more than usable_coins allows.
    """

    def __init__(self, api: Any, *, session_id: str = "default"):
        super().__init__(api, session_id=session_id)
        self.balance: Optional[CoinBalance] = None
        self.max_usable: Optional[MaxUsableCoins] = None
        self.discount: Optional[CoinDiscount] = None
        self.is_loading: bool = False
        self.is_calculating: bool = False
        self.error: Optional[str] = None
        self.calculation_error: Optional[str] = None

    def set_hotel_and_branch(self, hotel_id: str, branch_id: str) -> None:
        if self.set_scope(hotel_id, branch_id):
            self.clear_calculations()

    # ----------------------------
    # balance
    # ----------------------------

    async def fetch_coin_balance(self) -> Optional[CoinBalance]:
        self.is_loading = True
        self.error = None
        try:
            resp = await self.api.get_coin_balance()
            balance = CoinBalance.model_validate(_data(resp) or {})
        except Exception as e:
            self.error = user_message(e, message("coins.balance"))
            self.is_loading = False
            log_event(self.session_id, "coins_balance_fail", error_info(e))
            return None

        self.balance = balance
        self.is_loading = False
        log_event(self.session_id, "coins_balance_fetched", {"current_balance": balance.current_balance})
        return balance

    # ----------------------------
    # calculations
    # ----------------------------

    def needs_max_usable(self, order_value: float) -> bool:
        return self.max_usable is None or self.max_usable.order_value != order_value

    async def calculate_max_usable_coins(self, order_value: float) -> Optional[MaxUsableCoins]:
        if not self.has_scope():
            self.calculation_error = message("scope.missing_ids")
            return None

        scope: Scope = self.scope
        self.is_calculating = True
        self.calculation_error = None
        try:
            resp = await self.api.get_max_usable_coins(order_value, *scope)
            result = MaxUsableCoins.model_validate(_data(resp) or {})
        except Exception as e:
            if self.is_current(scope):
                self.max_usable = None
                self.calculation_error = user_message(e, message("coins.max_usable"))
                self.is_calculating = False
            log_event(self.session_id, "coins_max_usable_fail", error_info(e))
            return None

        if not self.is_current(scope):
            log_event(self.session_id, "coins_max_usable_stale", {"issued_for": list(scope)})
            return None
        self.max_usable = result
        self.is_calculating = False
        log_event(self.session_id, "coins_max_usable", {"order_value": order_value, "max": result.max_coins_usable})
        return result

    async def calculate_discount(self, order_value: float, coins_to_use: int) -> Optional[CoinDiscount]:
        if not self.has_scope():
            self.calculation_error = message("scope.missing_ids")
            return None

        scope: Scope = self.scope
        self.is_calculating = True
        self.calculation_error = None
        try:
            resp = await self.api.calculate_coin_discount(order_value, coins_to_use, *scope)
            result = CoinDiscount.model_validate(_data(resp) or {})
        except Exception as e:
            if self.is_current(scope):
                self.calculation_error = user_message(e, message("coins.discount"))
                self.is_calculating = False
            log_event(self.session_id, "coins_discount_fail", error_info(e))
            return None

        if not self.is_current(scope):
            log_event(self.session_id, "coins_discount_stale", {"issued_for": list(scope)})
            return None
        self.discount = result
        self.is_calculating = False
        return result

    def usable_coins(self, requested: int) -> int:
        """
        requested clamped to the known ceiling: max-usable if calculated,
        else the balance, else nothing.
        """
        if requested <= 0:
            return 0
        if self.max_usable is not None:
            ceiling = self.max_usable.max_coins_usable
        elif self.balance is not None:
            ceiling = self.balance.current_balance
        else:
            ceiling = 0
        return max(0, min(requested, ceiling))

    def clear_calculations(self) -> None:
        self.max_usable = None
        self.discount = None
        self.calculation_error = None
        self.is_calculating = False

    def clear_errors(self) -> None:
        self.error = None
        self.calculation_error = None

    def reset(self) -> None:
        self.balance = None
        self.is_loading = False
        self.error = None
        self.clear_calculations()
