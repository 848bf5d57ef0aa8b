# domain/ordering/offers_store.py
from __future__ import annotations

from typing import Any, List, Optional

from client.errors import error_info, user_message
from domain.ordering.messages import message
from domain.ordering.scope import Scope, ScopedStore
from models.api_models import Offer
from utils.logging import log_event


class OffersStore(ScopedStore):
    """
    Promotions available at the current hotel/branch.

    selected_offer: candidate the diner is looking at.
    applied_offer: the one offer that goes into checkout.
    Applying promotes the candidate and empties the selected slot.
    """

    def __init__(self, api: Any, *, session_id: str = "default"):
        super().__init__(api, session_id=session_id)
        self.offers: List[Offer] = []
        self.is_loading: bool = False
        self.error: Optional[str] = None
        self.selected_offer: Optional[Offer] = None
        self.applied_offer: Optional[Offer] = None
        self._loaded_scope: Optional[Scope] = None

    @property
    def is_loaded(self) -> bool:
        return self._loaded_scope is not None and self._loaded_scope == self.scope

    def set_hotel_and_branch(self, hotel_id: str, branch_id: str) -> None:
        if not self.set_scope(hotel_id, branch_id):
            return
        # offers of another branch cannot go into this checkout
        self.offers = []
        self.selected_offer = None
        self.applied_offer = None
        self.is_loading = False
        self.error = None
        log_event(self.session_id, "offers_scope_changed", {"hotel_id": self.hotel_id, "branch_id": self.branch_id})

    async def fetch_available_offers(self) -> None:
        if not self.has_scope():
            self.error = message("scope.missing_ids")
            return

        scope: Scope = self.scope
        self.is_loading = True
        self.error = None
        try:
            resp = await self.api.get_available_offers(*scope)
            data = resp.get("data") if isinstance(resp, dict) else None
            if isinstance(data, dict):
                data = data.get("data")
            raw = data if isinstance(data, list) else []
            offers = [Offer.model_validate(o) for o in raw if isinstance(o, dict)]
        except Exception as e:
            if not self.is_current(scope):
                return
            self.error = user_message(e, message("offers.fetch"))
            self.is_loading = False
            self.offers = []
            log_event(self.session_id, "offers_fetch_fail", error_info(e))
            return

        if not self.is_current(scope):
            log_event(self.session_id, "offers_fetch_stale", {"issued_for": list(scope)})
            return
        self.offers = offers
        self.is_loading = False
        self.error = None
        self._loaded_scope = scope
        log_event(self.session_id, "offers_fetched", {"count": len(offers)})

    async def initialize_offers_data(self) -> None:
        if self.is_loaded or not self.has_scope():
            return
        await self.single_flight(("offers",) + self.scope, self.fetch_available_offers)

    def find_by_code(self, code: str) -> Optional[Offer]:
        c = (code or "").strip().upper()
        for o in self.offers:
            if o.code.upper() == c:
                return o
        return None

    def select_offer(self, offer: Offer) -> None:
        self.selected_offer = offer

    def clear_selected_offer(self) -> None:
        self.selected_offer = None

    def apply_offer(self, offer: Offer) -> None:
        self.applied_offer = offer
        self.selected_offer = None
        log_event(self.session_id, "offer_applied", {"code": offer.code})

    def remove_applied_offer(self) -> None:
        self.applied_offer = None

    def clear_error(self) -> None:
        self.error = None
