# domain/ordering/menu_store.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from client.errors import error_info
from domain.ordering.messages import message
from domain.ordering.scope import Scope, ScopedStore
from utils.logging import log_event

HOME = "home"
MENU_PAGE = "menu_page"
VIEWS = (HOME, MENU_PAGE)


@dataclass
class MenuView:
    items: List[Dict[str, Any]] = field(default_factory=list)
    categories: List[Dict[str, Any]] = field(default_factory=list)
    selected_category: Optional[str] = None
    search_query: str = ""
    is_loading: bool = False
    is_loaded: bool = False
    error: Optional[str] = None


def _safe_dict(x: Any) -> Dict[str, Any]:
    return x if isinstance(x, dict) else {}


def _food_items(resp: Dict[str, Any]) -> List[Dict[str, Any]]:
    items = _safe_dict(resp.get("data")).get("foodItems")
    return [it for it in items if isinstance(it, dict)] if isinstance(items, list) else []


def _categories(resp: Dict[str, Any]) -> List[Dict[str, Any]]:
    cats = _safe_dict(resp.get("data")).get("categories")
    return [c for c in cats if isinstance(c, dict)] if isinstance(cats, list) else []


class MenuStore(ScopedStore):
    """
    Menu items and categories of one hotel/branch.

    Two independent views share one store: the home screen list and the menu
    page list (with search and veg/non-veg filter). Bestsellers are shared.
    """

    def __init__(self, api: Any, *, session_id: str = "default"):
        super().__init__(api, session_id=session_id)
        self._reset_data()

    def _reset_data(self) -> None:
        self.views: Dict[str, MenuView] = {name: MenuView() for name in VIEWS}
        self.all_items: List[Dict[str, Any]] = []
        self.stats: Optional[Dict[str, Any]] = None
        self.bestsellers: List[Dict[str, Any]] = []
        self.bestsellers_loaded: bool = False
        self.is_loading_bestsellers: bool = False

    def view(self, name: str) -> MenuView:
        if name not in self.views:
            raise KeyError(f"unknown menu view: {name}")
        return self.views[name]

    def set_hotel_and_branch(self, hotel_id: str, branch_id: str) -> None:
        if self.set_scope(hotel_id, branch_id):
            self._reset_data()
            log_event(self.session_id, "menu_scope_changed", {"hotel_id": self.hotel_id, "branch_id": self.branch_id})

    # ----------------------------
    # views
    # ----------------------------

    async def initialize_view(self, name: str) -> None:
        v = self.view(name)
        if not self.has_scope():
            v.error = message("scope.missing_ids")
            return
        if v.is_loaded:
            return
        await self.single_flight(("menu", name) + self.scope, lambda: self._load_view(name))

    async def _load_view(self, name: str) -> None:
        scope: Scope = self.scope
        v = self.view(name)
        v.is_loading = True
        v.error = None
        try:
            menu_resp, cat_resp = await asyncio.gather(
                self.api.get_menu_items(*scope, {}),
                self.api.get_categories(*scope),
            )
        except Exception as e:
            if self.is_current(scope):
                v.error = message(f"menu.{name}.load")
                v.is_loading = False
            log_event(self.session_id, "menu_load_fail", {"view": name, **error_info(e)})
            return

        if not self.is_current(scope):
            return

        # views are replaced on scope change, so re-read it
        v = self.view(name)
        if menu_resp.get("success") and cat_resp.get("success"):
            items = _food_items(menu_resp)
            self.all_items = items
            self.stats = _safe_dict(menu_resp.get("data")).get("stats")
            v.items = items
            v.categories = _categories(cat_resp)
            v.is_loaded = True
            log_event(self.session_id, "menu_loaded", {"view": name, "items": len(items), "categories": len(v.categories)})
        else:
            v.error = menu_resp.get("message") or cat_resp.get("message") or message(f"menu.{name}.load")
        v.is_loading = False

    async def _query(self, name: str, filters: Dict[str, Any], fallback_key: str) -> None:
        v = self.view(name)
        if not self.has_scope():
            v.error = message("scope.missing_ids")
            return

        scope: Scope = self.scope
        v.is_loading = True
        v.error = None
        try:
            resp = await self.api.get_menu_items(*scope, filters)
        except Exception as e:
            if self.is_current(scope):
                v.error = message(fallback_key)
                v.is_loading = False
            log_event(self.session_id, "menu_query_fail", {"view": name, "filters": filters, **error_info(e)})
            return

        if not self.is_current(scope):
            return
        v = self.view(name)
        if resp.get("success"):
            v.items = _food_items(resp)
            self.stats = _safe_dict(resp.get("data")).get("stats")
        else:
            v.error = resp.get("message") or message(fallback_key)
        v.is_loading = False

    async def filter_by_category(self, name: str, category_id: Optional[str]) -> None:
        self.view(name).selected_category = category_id
        filters = {"category": category_id} if category_id else {}
        await self._query(name, filters, "menu.filter")

    async def search(self, query: str) -> None:
        self.view(MENU_PAGE).search_query = query or ""
        await self._query(MENU_PAGE, {"search": query or None}, "menu.search")

    async def filter_by_type(self, food_type: Optional[str]) -> None:
        filters = {"food_type": food_type} if food_type else {}
        await self._query(MENU_PAGE, filters, "menu.filter_type")

    # ----------------------------
    # bestsellers
    # ----------------------------

    async def initialize_bestsellers(self) -> None:
        if not self.has_scope() or self.bestsellers_loaded:
            return

        scope: Scope = self.scope
        self.is_loading_bestsellers = True
        try:
            resp = await self.api.get_menu_items(*scope, {"is_best_seller": True})
        except Exception as e:
            # no error slot for bestsellers
            if self.is_current(scope):
                self.is_loading_bestsellers = False
            log_event(self.session_id, "bestsellers_fail", error_info(e))
            return

        if not self.is_current(scope):
            return
        if resp.get("success"):
            self.bestsellers = _food_items(resp)
            self.bestsellers_loaded = True
        self.is_loading_bestsellers = False
