"""API routers, mounted under the configured API prefix."""

from fastapi import FastAPI

from electronic_api.config import Settings
from electronic_api.routers import auth, cart, categories, order_items, orders, payments, products, users

ROUTERS = (
    auth.router,
    categories.router,
    products.router,
    users.router,
    cart.router,
    orders.router,
    order_items.router,
    payments.router,
)


def include_routers(app: FastAPI, settings: Settings) -> None:
    prefix = "" if settings.api_prefix == "/" else settings.api_prefix
    for router in ROUTERS:
        app.include_router(router, prefix=prefix)
