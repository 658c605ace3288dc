from typing import Dict, Optional

from storefront_telemetry.common.pydantic_types import BaseModel


class ProductInfo(BaseModel):
    product_id: str
    product_name: str
    category: Optional[str] = None
    price: float


class CartInfo(BaseModel):
    product_id: str
    quantity: int
    price: float
    cart_total_items: Optional[int] = None
    cart_subtotal: Optional[float] = None


class PurchaseInfo(BaseModel):
    order_id: str
    total_amount: float
    item_count: int
    payment_method: Optional[str] = None


class SearchInfo(BaseModel):
    query: str
    result_count: int
    filters: Optional[Dict[str, str]] = None
