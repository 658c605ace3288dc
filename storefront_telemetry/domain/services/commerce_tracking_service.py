"""
Storefront events expressed as telemetry. Every method is a composition of TelemetryService
primitives and holds no state of its own.
"""

from typing import Dict, Optional, Union

from storefront_telemetry.common.dtos.commerce import (
    CartInfo,
    ProductInfo,
    PurchaseInfo,
    SearchInfo,
)
from storefront_telemetry.core.utils.clock import Clock, epoch_millis
from storefront_telemetry.domain.services.telemetry_service import TelemetryService


def format_number(value: Union[int, float]) -> str:
    """Render whole floats without a trailing ``.0`` so prices read like the app shows them."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class CommerceTrackingService:
    def __init__(self, telemetry: TelemetryService, clock: Clock = epoch_millis):
        self._telemetry = telemetry
        self._clock = clock

    def _record(
        self, name: str, start_time: int, attributes: Dict[str, str], success: bool = True
    ) -> None:
        self._telemetry.record_completed_span(name, start_time, self._clock(), attributes, success)

    # Products

    def track_product_view(self, info: ProductInfo) -> None:
        start_time = self._clock()
        self._telemetry.add_breadcrumb(f"PRODUCT_VIEWED_{info.product_id}")

        attributes = {
            "product.id": info.product_id,
            "product.name": info.product_name,
            "product.price": format_number(info.price),
        }
        if info.category:
            attributes["product.category"] = info.category

        self._record("product_view", start_time, attributes)
        self._telemetry.log_info("Product viewed", attributes)

    def track_product_viewed(self, product_id: str, product_name: str) -> None:
        """Older call sites only know the id and name."""
        self.track_product_view(
            ProductInfo(product_id=product_id, product_name=product_name, price=0)
        )

    # Cart

    def track_add_to_cart(self, info: CartInfo) -> None:
        start_time = self._clock()
        self._telemetry.add_breadcrumb(f"ADD_TO_CART_{info.product_id}")

        attributes = {
            "product.id": info.product_id,
            "cart.quantity": str(info.quantity),
            "cart.item_value": format_number(info.price),
        }
        if info.cart_total_items is not None:
            attributes["cart_total_items"] = str(info.cart_total_items)
        if info.cart_subtotal is not None:
            attributes["cart_subtotal"] = format_number(info.cart_subtotal)

        self._record("add_to_cart", start_time, attributes)
        self._telemetry.log_info("Product added to cart", attributes)

        if info.cart_total_items is not None:
            self._telemetry.add_session_property("cart_item_count", str(info.cart_total_items))

    def track_remove_from_cart(
        self, product_id: str, cart_total_items: Optional[int] = None
    ) -> None:
        self._telemetry.add_breadcrumb(f"REMOVE_FROM_CART_{product_id}")
        self._telemetry.log_info("Product removed from cart", {"product.id": product_id})

        if cart_total_items is not None:
            self._telemetry.add_session_property("cart_item_count", str(cart_total_items))

    def track_cart_cleared(self) -> None:
        self._telemetry.add_breadcrumb("CART_CLEARED")
        self._telemetry.log_info("Cart cleared")
        self._telemetry.add_session_property("cart_item_count", "0")

    # Purchases

    @staticmethod
    def _order_attributes(info: PurchaseInfo) -> Dict[str, str]:
        return {
            "order.id": info.order_id,
            "order.total": format_number(info.total_amount),
            "order.item_count": str(info.item_count),
        }

    def track_purchase_attempt(self, info: PurchaseInfo) -> None:
        start_time = self._clock()
        self._telemetry.add_breadcrumb("CHECKOUT_STARTED")

        attributes = self._order_attributes(info)
        self._record("purchase_attempt", start_time, attributes)
        self._telemetry.log_info("Purchase attempt started", attributes)
        self._telemetry.add_session_property("current_order_id", info.order_id)

    def track_purchase_success(self, info: PurchaseInfo) -> None:
        start_time = self._clock()
        self._telemetry.add_breadcrumb("CHECKOUT_COMPLETED")

        attributes = self._order_attributes(info)
        if info.payment_method:
            attributes["payment.method"] = info.payment_method

        self._record("purchase_success", start_time, attributes)
        self._telemetry.log_info("Purchase successful", attributes)

        self._telemetry.remove_session_property("current_order_id")
        self._telemetry.add_session_property("last_successful_order", info.order_id, permanent=True)
        self._telemetry.add_session_property("cart_item_count", "0")

    def track_purchase_failure(
        self, order_id: str, error_message: str, failure_reason: Optional[str] = None
    ) -> None:
        start_time = self._clock()
        self._telemetry.add_breadcrumb("CHECKOUT_FAILED")

        attributes = {"order.id": order_id, "error.message": error_message}
        if failure_reason:
            attributes["failure.reason"] = failure_reason

        self._record("purchase_failure", start_time, attributes, success=False)
        self._telemetry.log_error("Purchase failed", attributes)

    # Checkout flow

    def track_checkout_started(self) -> None:
        self._telemetry.add_breadcrumb("CHECKOUT_STARTED")
        self._telemetry.log_info("Checkout flow started")

    def track_checkout_step(self, step: int, step_name: str) -> None:
        self._telemetry.add_breadcrumb(f"CHECKOUT_STEP_{step}_{step_name.upper()}")
        self._telemetry.log_info(
            f"Checkout step {step}: {step_name}",
            {"checkout.step": str(step), "checkout.step_name": step_name},
        )

    def track_checkout_completed(self, order_id: str, total: float) -> None:
        self._telemetry.add_breadcrumb("CHECKOUT_COMPLETED")
        self._telemetry.log_info(
            "Checkout completed", {"order.id": order_id, "order.total": format_number(total)}
        )

    def track_checkout_abandoned(self, step: int) -> None:
        self._telemetry.add_breadcrumb("CHECKOUT_ABANDONED")
        self._telemetry.log_warning("Checkout abandoned", {"checkout.step": str(step)})

    # Search

    def track_search(self, info: SearchInfo) -> None:
        start_time = self._clock()
        self._telemetry.add_breadcrumb(f"SEARCH_{info.query}")

        attributes = {
            "search.query": info.query,
            "search.result_count": str(info.result_count),
        }
        for key, value in (info.filters or {}).items():
            attributes[f"search.filter.{key}"] = value

        self._record("search_performed", start_time, attributes)
        self._telemetry.log_info("Search performed", attributes)

    # Authentication

    def track_login_attempt(self, method: str) -> None:
        start_time = self._clock()
        self._telemetry.add_breadcrumb(f"USER_LOGIN_STARTED_{method.upper()}")

        self._record("login_attempt", start_time, {"auth.method": method})
        self._telemetry.log_info("Login attempt started", {"auth.method": method})

    def track_login_success(self, user_id: str, method: str, email: Optional[str] = None) -> None:
        start_time = self._clock()
        self._telemetry.add_breadcrumb(f"USER_LOGIN_SUCCESS_{method.upper()}")

        attributes = {"auth.method": method, "user.id": user_id}
        if email:
            attributes["auth.email"] = email

        self._record(f"{method.lower()}_sign_in", start_time, attributes)
        self._telemetry.log_info("Login successful", attributes)

        self._telemetry.set_user_identifier(user_id)
        if email:
            self._telemetry.set_user_email(email)
        self._telemetry.add_session_property("auth_method", method)
        self._telemetry.add_session_property(
            "user_type", "guest" if method == "guest" else "registered"
        )

    def track_login_failure(self, method: str, error_message: str) -> None:
        start_time = self._clock()
        self._telemetry.add_breadcrumb(f"USER_LOGIN_FAILED_{method.upper()}")

        attributes = {"auth.method": method, "error.message": error_message}
        self._record("login_failure", start_time, attributes, success=False)
        self._telemetry.log_error("Login failed", attributes)

    def track_logout(self, session_duration: Optional[float] = None) -> None:
        self._telemetry.add_breadcrumb("USER_LOGOUT")

        attributes: Dict[str, str] = {}
        if session_duration is not None:
            attributes["session.duration"] = format_number(session_duration)

        self._record("user_sign_out", self._clock(), attributes)
        self._telemetry.log_info("User logged out", attributes)
        self._telemetry.clear_user_data()

    def track_registration(self, user_id: str, email: str) -> None:
        start_time = self._clock()
        self._telemetry.add_breadcrumb("USER_REGISTRATION_SUCCESS")

        attributes = {"user.id": user_id, "auth.email": email}
        self._record("email_registration", start_time, attributes)
        self._telemetry.log_info("User registered", attributes)

    # Navigation

    def track_user_action(
        self, action: str, screen: str, properties: Optional[Dict[str, str]] = None
    ) -> None:
        self._telemetry.add_breadcrumb(f"USER_ACTION_{action.upper()}")
        self._telemetry.log_info(
            f"{action} on {screen}", {"action": action, "screen": screen, **(properties or {})}
        )

    def track_screen_view(
        self, screen_name: str, properties: Optional[Dict[str, str]] = None
    ) -> None:
        self._telemetry.add_breadcrumb(f"SCREEN_VIEW_{screen_name.upper()}")
        self._telemetry.log_info(
            f"Screen viewed: {screen_name}", {"screen": screen_name, **(properties or {})}
        )
