"""
Users service (default port 8081)

    uvicorn storefront.apps.users:create_app --factory --port 8081
"""
from typing import Optional

from fastapi import FastAPI

from storefront.api.routes import auth, users
from storefront.apps.base import build_app, build_lifespan
from storefront.core.config import settings
from storefront.core.database import get_sessionmaker
from storefront.models import USERS_TABLES
from storefront.seed import seed_memory_users, seed_sql_users
from storefront.services.auth_service import AuthService
from storefront.stores.users import InMemoryUserStore, SqlUserStore, UserStore


def create_app(user_store: Optional[UserStore] = None, seed: Optional[bool] = None) -> FastAPI:
    seed = settings.SEED_DEMO_DATA if seed is None else seed
    startup = []

    if user_store is None:
        if settings.uses_database:
            user_store = SqlUserStore(get_sessionmaker())
            if seed:
                startup.append(lambda: seed_sql_users(get_sessionmaker()))
        else:
            user_store = InMemoryUserStore()
            if seed:
                seed_memory_users(user_store)

    storage = "postgres" if isinstance(user_store, SqlUserStore) else "memory"
    app = build_app(
        "users",
        "Storefront Users Service",
        [(auth.router, "/auth", "Authentication"), (users.router, "/users", "Users")],
        lifespan=build_lifespan(USERS_TABLES, startup=startup),
        storage_backend=storage,
    )

    auth_service = AuthService(user_store)
    app.state.user_store = user_store
    app.state.auth_service = auth_service
    # the users service verifies its own tokens
    app.state.identity = auth_service
    app.state.health_checks.append(user_store.ping)
    return app
