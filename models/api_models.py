# models/api_models.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PaymentMethod = Literal["cash", "card", "upi", "wallet", "razorpay"]

TERMINAL_PAYMENT_STATUSES = {"success", "failed", "cancelled"}


def _lower(v: Any) -> Any:
    if isinstance(v, str):
        return v.lower().strip()
    return v


# ----------------------------
# identity / scan
# ----------------------------

class Identity(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str = ""
    username: str = ""
    email: str = ""
    phone: str = ""
    profile_image: Optional[str] = Field(default=None, alias="profileImage")
    is_email_verified: bool = Field(default=False, alias="isEmailVerified")
    coins: int = 0
    role: str = "user"


class ScanParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hotel_id: str = Field(..., alias="hotelId", min_length=1)
    branch_id: str = Field(..., alias="branchId", min_length=1)
    table_no: str = Field(..., alias="tableNo", min_length=1)

    def to_query(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


class ScanResult(BaseModel):
    """
    data part of the /scan response. Nested objects are kept as raw dicts.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    authenticated: bool = False
    user: Optional[Dict[str, Any]] = None
    table: Optional[Dict[str, Any]] = None
    hotel: Optional[Dict[str, Any]] = None
    branch: Optional[Dict[str, Any]] = None
    menu: Optional[Dict[str, Any]] = None
    scan_data: Optional[Dict[str, Any]] = Field(default=None, alias="scanData")


# ----------------------------
# cart / offers
# ----------------------------

class CartLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: str
    product_id: str
    name: str = ""
    price: float = 0
    quantity: int = Field(default=1, ge=0)
    category: str = ""
    is_veg: bool = False
    image: Optional[str] = None

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "CartLine":
        """
        backend cart item {_id, foodItem: {...}, quantity, price} -> CartLine
        """
        food = item.get("foodItem") if isinstance(item.get("foodItem"), dict) else {}
        category = food.get("category") if isinstance(food.get("category"), dict) else {}
        return cls(
            item_id=str(item.get("_id") or item.get("id") or ""),
            product_id=str(food.get("_id") or food.get("id") or item.get("foodItem") or ""),
            name=str(food.get("name") or ""),
            price=float(item.get("price") or 0),
            quantity=int(item.get("quantity") or 0),
            category=str(category.get("name") or ""),
            is_veg=food.get("foodType") == "veg",
            image=food.get("image"),
        )


class CartSummary(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    subtotal: float = 0
    total_items: int = Field(default=0, alias="totalItems")
    item_count: int = Field(default=0, alias="itemCount")
    is_empty: bool = Field(default=True, alias="isEmpty")


class Offer(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(default="", alias="_id")
    code: str
    title: str = ""
    description: str = ""
    discount_type: Literal["percent", "fixed"] = Field(default="fixed", alias="discountType")
    discount_value: float = Field(default=0, alias="discountValue")
    min_order_value: float = Field(default=0, alias="minOrderValue")
    max_discount_amount: Optional[float] = Field(default=None, alias="maxDiscountAmount")
    valid_days: List[str] = Field(default_factory=list, alias="validDays")
    is_active: Optional[bool] = Field(default=None, alias="isActive")

    @field_validator("discount_type", mode="before")
    @classmethod
    def normalize_lowercase(cls, v):
        return _lower(v)

    def discount_for(self, subtotal: float) -> float:
        """Estimated discount on a subtotal. The backend computes the final figure."""
        if subtotal <= 0 or subtotal < self.min_order_value:
            return 0
        if self.discount_type == "percent":
            amount = subtotal * self.discount_value / 100
            if self.max_discount_amount:
                amount = min(amount, self.max_discount_amount)
        else:
            amount = self.discount_value
        return min(amount, subtotal)


# ----------------------------
# coins
# ----------------------------

class CoinBalance(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    current_balance: int = Field(default=0, alias="currentBalance")
    total_earned: int = Field(default=0, alias="totalEarned")
    total_used: int = Field(default=0, alias="totalUsed")
    net_gain: int = Field(default=0, alias="netGain")
    last_activity: Optional[str] = Field(default=None, alias="lastActivity")


class MaxUsableCoins(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    order_value: float = Field(default=0, alias="orderValue")
    user_coin_balance: int = Field(default=0, alias="userCoinBalance")
    max_coins_usable: int = Field(default=0, alias="maxCoinsUsable")
    system_max_coins: int = Field(default=0, alias="systemMaxCoins")
    max_discount: float = Field(default=0, alias="maxDiscount")
    coin_value: float = Field(default=1, alias="coinValue")
    max_usage_percent: float = Field(default=0, alias="maxUsagePercent")


class CoinDiscount(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    coins_to_use: int = Field(default=0, alias="coinsToUse")
    discount: float = 0
    coin_value: float = Field(default=1, alias="coinValue")
    final_order_value: float = Field(default=0, alias="finalOrderValue")
    max_coins_usable: int = Field(default=0, alias="maxCoinsUsable")
    user_coin_balance: int = Field(default=0, alias="userCoinBalance")


# ----------------------------
# checkout / payment
# ----------------------------

class CheckoutFormData(BaseModel):
    table_id: str = Field(..., min_length=1)
    payment_method: PaymentMethod = "razorpay"
    customer_note: str = ""
    coins_to_use: int = Field(default=0, ge=0)
    offer_code: str = ""

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_lowercase(cls, v):
        return _lower(v)


class PaymentUserDetails(BaseModel):
    user_id: str
    user_phone: str = ""
    user_name: str = ""
    user_email: str = ""


# ----------------------------
# HTTP surface
# ----------------------------

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class AddCartItemRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1, le=50)


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(..., ge=0, le=50)


class ApplyOfferRequest(BaseModel):
    code: str = Field(..., min_length=1)


class CheckoutRequest(BaseModel):
    payment_method: PaymentMethod = "razorpay"
    customer_note: str = ""
    coins_to_use: int = Field(default=0, ge=0)

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_lowercase(cls, v):
        return _lower(v)


class CoinDiscountRequest(BaseModel):
    coins_to_use: int = Field(..., ge=0)


class InitiatePaymentRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)


class StoreResponse(BaseModel):
    ok: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    state: Dict[str, Any] = Field(default_factory=dict)
