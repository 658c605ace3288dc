"""
Runs one instrumented storefront session against the configured collector.

Each scenario drives a short shopping journey through the network wrapper and the commerce
tracker, then keeps the session open for `--duration` seconds so an armed CI crash can fire.
Consecutive runs on the same machine share a device id and stitch into one device timeline.
"""

import argparse
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional

from storefront_telemetry.common.dtos.commerce import (
    CartInfo,
    ProductInfo,
    PurchaseInfo,
    SearchInfo,
)
from storefront_telemetry.common.dtos.telemetry import HttpMethod, NetworkRequestOptions
from storefront_telemetry.core.config import telemetry_config
from storefront_telemetry.core.loggers import logger_name, make_logger, silence_chatty_logger
from storefront_telemetry.domain.services import (
    CommerceTrackingService,
    NetworkInstrumentationService,
    TelemetryService,
)
from storefront_telemetry.infra.gateways import AsyncioTaskScheduler, OtelTelemetryBackendGateway

logger = make_logger(logger_name())

SCENARIOS = ("browse", "cart", "search", "profile", "checkout")
MOCK_DELAY_SECONDS = 0.5

_PRODUCTS: List[Dict[str, Any]] = [
    {"id": "prod-1", "name": "Wireless Headphones", "category": "electronics", "price": 199.99},
    {"id": "prod-2", "name": "Running Shoes", "category": "sports", "price": 89.0},
    {"id": "prod-3", "name": "Coffee Maker", "category": "home", "price": 49.5},
]


class StorefrontJourney:
    """A scripted shopper. Every backend call goes through the instrumented network wrapper."""

    def __init__(
        self,
        telemetry: TelemetryService,
        network: NetworkInstrumentationService,
        commerce: CommerceTrackingService,
        rng: random.Random,
        mock_delay_seconds: float = MOCK_DELAY_SECONDS,
    ):
        self.telemetry = telemetry
        self.network = network
        self.commerce = commerce
        self.rng = rng
        self.mock_delay_seconds = mock_delay_seconds

    async def _call(
        self,
        endpoint: str,
        method: HttpMethod,
        respond: Callable[[], Any],
        body: Optional[Any] = None,
        latency: float = 1,
    ) -> Any:
        async def operation() -> Any:
            await asyncio.sleep(self.mock_delay_seconds * latency)
            return respond()

        return await self.network.execute_request(
            NetworkRequestOptions(endpoint=endpoint, method=method, body=body), operation
        )

    async def _on_screen(self, screen_name: str, action: Callable[[], Awaitable[None]]) -> None:
        handle = self.telemetry.start_screen_view_span(screen_name)
        self.commerce.track_screen_view(screen_name)
        success = False
        try:
            await action()
            success = True
        finally:
            if handle:
                self.telemetry.end_span(handle, success)

    async def browse(self) -> None:
        async def home() -> None:
            await self._call("/categories", HttpMethod.GET, lambda: ["electronics", "sports"])
            await self._call("/products/featured", HttpMethod.GET, lambda: _PRODUCTS[:2])

        async def product_detail() -> None:
            product = await self._call(
                f"/products/{_PRODUCTS[0]['id']}", HttpMethod.GET, lambda: _PRODUCTS[0]
            )
            self.commerce.track_product_view(_product_info(product))

        await self._on_screen("Home", home)
        await self._on_screen("ProductDetail", product_detail)

    async def cart(self) -> None:
        await self.browse()
        for count, product in enumerate(_PRODUCTS[:2], start=1):
            self.commerce.track_add_to_cart(
                CartInfo(
                    product_id=product["id"],
                    quantity=1,
                    price=product["price"],
                    cart_total_items=count,
                    cart_subtotal=sum(p["price"] for p in _PRODUCTS[:count]),
                )
            )
        self.commerce.track_remove_from_cart(_PRODUCTS[1]["id"], cart_total_items=1)

    async def search(self) -> None:
        query = "shoes"

        async def search_screen() -> None:
            results = await self._call(
                f"/products/search?q={query}",
                HttpMethod.GET,
                lambda: [p for p in _PRODUCTS if p["category"] == "sports"],
            )
            self.commerce.track_search(
                SearchInfo(query=query, result_count=len(results), filters={"sort": "relevance"})
            )

        await self._on_screen("Search", search_screen)

    async def profile(self) -> None:
        self.commerce.track_login_attempt("email")
        email = "shopper@example.com"
        user = await self._call(
            "/auth/login",
            HttpMethod.POST,
            lambda: {"id": "user-1", "email": email},
            body={"email": email},
        )
        self.commerce.track_login_success(user["id"], "email", user["email"])
        await self._call("/user/addresses", HttpMethod.GET, lambda: [{"city": "Portland"}])
        await self._call("/orders?userId=user-1", HttpMethod.GET, lambda: [])

    async def checkout(self) -> None:
        await self.cart()
        self.commerce.track_checkout_started()
        self.commerce.track_checkout_step(1, "shipping")
        await self._call("/shipping/methods", HttpMethod.GET, lambda: ["standard", "express"])
        self.commerce.track_checkout_step(2, "payment")

        total = _PRODUCTS[0]["price"]
        order_id = f"order-{self.rng.randrange(10**6)}"
        self.commerce.track_purchase_attempt(
            PurchaseInfo(order_id=order_id, total_amount=total, item_count=1)
        )
        await self._call(
            "/orders",
            HttpMethod.POST,
            lambda: {"id": order_id, "status": "pending"},
            body={"total": total, "items": [_PRODUCTS[0]["id"]]},
            latency=2,
        )

        def process_payment() -> Dict[str, Any]:
            # 5% of payments are declined
            if self.rng.random() < 0.05:
                self.commerce.track_purchase_failure(order_id, "Payment declined", "card_declined")
                raise RuntimeError("Payment declined")
            return {"success": True, "transaction_id": f"txn-{order_id}"}

        try:
            await self._call(
                "/payments/process",
                HttpMethod.POST,
                process_payment,
                body={"amount": total, "currency": "USD", "order_id": order_id},
                latency=3,
            )
        except RuntimeError as e:
            self.telemetry.log_handled_error(e, {"order.id": order_id})
            self.commerce.track_checkout_abandoned(2)
            return

        self.commerce.track_purchase_success(
            PurchaseInfo(
                order_id=order_id, total_amount=total, item_count=1, payment_method="credit_card"
            )
        )
        self.commerce.track_checkout_completed(order_id, total)


def _product_info(product: Dict[str, Any]) -> ProductInfo:
    return ProductInfo(
        product_id=product["id"],
        product_name=product["name"],
        category=product["category"],
        price=product["price"],
    )


async def run_session(scenario: str, duration_seconds: float, ci_mode: bool) -> None:
    config = telemetry_config()
    if ci_mode:
        config.ci_mode = True
    config.session_run_source = f"stitched-{scenario}"

    rng = random.Random()
    telemetry = TelemetryService(
        backend_gateway=OtelTelemetryBackendGateway(config),
        config=config,
        scheduler=AsyncioTaskScheduler(),
        rng=rng,
    )
    if not await telemetry.initialize():
        logger.warning("Telemetry is disabled for this session, continuing without it")

    session_id = await telemetry.get_session_id()
    logger.info(f"Running scenario {scenario!r} in session {session_id}")

    journey = StorefrontJourney(
        telemetry=telemetry,
        network=NetworkInstrumentationService(telemetry, config.api_base_url),
        commerce=CommerceTrackingService(telemetry),
        rng=rng,
    )
    await getattr(journey, scenario)()

    logger.info(f"Keeping the session open for {duration_seconds} seconds")
    await asyncio.sleep(duration_seconds)

    telemetry.end_session()
    telemetry.shutdown()
    logger.info(f"Scenario {scenario!r} completed")


def entrypoint():
    parser = argparse.ArgumentParser(description="Run one instrumented storefront session.")
    parser.add_argument(
        "--scenario", "-s", choices=SCENARIOS, default="browse", help="The journey to run."
    )
    parser.add_argument(
        "--duration",
        "-d",
        type=float,
        default=45.0,
        help="Seconds to keep the session open after the journey.",
    )
    parser.add_argument(
        "--ci-mode",
        action="store_true",
        help="Enable the CI crash simulation regardless of the config file.",
    )

    args = parser.parse_args()
    # Exporter retries against an unreachable collector are logged on every attempt
    silence_chatty_logger("opentelemetry.exporter.otlp.proto.grpc.exporter", quieter=logging.ERROR)
    asyncio.run(
        run_session(scenario=args.scenario, duration_seconds=args.duration, ci_mode=args.ci_mode)
    )


if __name__ == "__main__":
    entrypoint()
