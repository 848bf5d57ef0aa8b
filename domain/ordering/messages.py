# domain/ordering/messages.py
from __future__ import annotations

from typing import Dict

MESSAGES: Dict[str, str] = {
    # scope
    "scope.missing": "Hotel and branch not set",
    "scope.missing_ids": "Hotel ID and Branch ID are required",

    # scan
    "scan.missing_params": "Invalid QR code: Missing required parameters",
    "scan.not_authenticated": "Authentication failed. Please sign in to continue.",
    "scan.session_expired": "Session expired. Please sign in again.",
    "scan.failed": "Failed to process QR scan",

    # menu
    "menu.home.load": "Failed to load home data",
    "menu.menu_page.load": "Failed to load menu page data",
    "menu.filter": "Failed to filter menu items",
    "menu.search": "Failed to search menu items",
    "menu.filter_type": "Failed to filter menu items by type",

    # offers
    "offers.fetch": "Failed to fetch offers",
    "offers.unknown_code": "Offer {code} is not available here",

    # cart
    "cart.fetch": "Failed to fetch cart",
    "cart.add": "Failed to add item to cart",
    "cart.update": "Failed to update item quantity",
    "cart.remove": "Failed to remove item",
    "cart.clear": "Failed to clear cart",
    "cart.bulk_update": "Failed to bulk update cart",
    "cart.page": "Failed to initialize cart page",

    # coins
    "coins.balance": "Failed to fetch coin balance",
    "coins.max_usable": "Failed to calculate max usable coins",
    "coins.discount": "Failed to calculate discount",

    # checkout / payment
    "checkout.failed": "Failed to process checkout",
    "checkout.no_table": "Table not resolved. Please scan the QR code again.",
    "payment.initiate": "Failed to initiate payment",
    "payment.status": "Failed to check payment status",

    # auth
    "auth.login": "Login failed",
}


def message(key: str, **vars) -> str:
    tmpl = MESSAGES.get(key) or "Something went wrong. Please try again."
    try:
        return tmpl.format(**vars)
    except (KeyError, IndexError):
        return tmpl
