"""Entry point for the FastAPI-powered Streamlist API."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from .config import Settings, settings as default_settings
from .errors import (
    DuplicateKeyError,
    InvalidCredentialsError,
    NotAuthenticatedError,
    NotFoundError,
    PersistenceError,
    StreamlistError,
    TransitionInProgressError,
    ValidationFailedError,
)
from .models import CatalogItem, ContentKind, Trailer, UserRecord, WishlistEntry
from .services.bindings import AuthBinding, WishlistBinding
from .services.credentials import AcceptAnyPassword, CredentialVerifier, HashedCredentials
from .services.session import SessionRegister
from .services.tmdb import TMDBClient, image_url
from .services.trailers import best_trailer, youtube_embed_url, youtube_thumbnail
from .services.wishlist import Wishlist, sort_entries
from .storage import KeyValueStore, SqlKeyValueStore, build_key_value_store
from .utils import coerce_kind

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI

_ERROR_STATUS: tuple[tuple[type[StreamlistError], int], ...] = (
    (DuplicateKeyError, 409),
    (TransitionInProgressError, 409),
    (InvalidCredentialsError, 401),
    (NotAuthenticatedError, 401),
    (NotFoundError, 404),
    (ValidationFailedError, 422),
    (PersistenceError, 503),
)


class CatalogSource(Protocol):
    async def list_category(
        self, kind: ContentKind, category: str, *, page: int = 1
    ) -> list[CatalogItem]: ...

    async def get_item_trailers(self, item_id: int, kind: ContentKind) -> list[Trailer]: ...


@dataclass
class AppServices:
    """Stores and bindings for the single storage scope served by this process."""

    register: SessionRegister
    wishlist: Wishlist
    auth: AuthBinding
    wishlist_view: WishlistBinding
    catalog: CatalogSource | None = None


class SignUpRequest(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str | None = Field(
        default=None,
        validation_alias=AliasChoices("confirmPassword", "confirm_password"),
    )


class SignInRequest(BaseModel):
    email: str = ""
    password: str = ""


def build_services(app_settings: Settings, kv_store: KeyValueStore) -> AppServices:
    credentials: CredentialVerifier
    if app_settings.verify_passwords:
        credentials = HashedCredentials(
            kv_store, iterations=app_settings.password_hash_iterations
        )
    else:
        credentials = AcceptAnyPassword()
    register = SessionRegister(
        kv_store,
        credentials=credentials,
        latency_seconds=app_settings.auth_latency_seconds,
    )
    wishlist = Wishlist(kv_store)
    return AppServices(
        register=register,
        wishlist=wishlist,
        auth=AuthBinding(register),
        wishlist_view=WishlistBinding(wishlist),
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    app_settings: Settings = fastapi_app.state.settings
    exit_stack = AsyncExitStack()
    if getattr(fastapi_app.state, "services", None) is None:
        kv_store = build_key_value_store(app_settings)
        if isinstance(kv_store, SqlKeyValueStore):
            exit_stack.callback(kv_store.database.dispose)
        fastapi_app.state.services = build_services(app_settings, kv_store)
    services: AppServices = fastapi_app.state.services
    if services.catalog is None and app_settings.tmdb_api_key:
        http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(app_settings.tmdb_api_url),
                timeout=httpx.Timeout(15.0, connect=5.0),
            )
        )
        services.catalog = TMDBClient(app_settings, http_client)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        services.auth.close()
        services.wishlist_view.close()
        await exit_stack.aclose()


def create_app(
    app_settings: Settings | None = None,
    *,
    kv_store: KeyValueStore | None = None,
    catalog_client: CatalogSource | None = None,
) -> FastAPI:
    app_settings = app_settings or default_settings
    fastapi_app = FastAPI(
        title=app_settings.app_name,
        description="Accounts and wishlist for a movie and series catalog",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    fastapi_app.state.settings = app_settings
    fastapi_app.state.services = None
    if kv_store is not None:
        fastapi_app.state.services = build_services(app_settings, kv_store)
        fastapi_app.state.services.catalog = catalog_client

    register_routes(fastapi_app)
    return fastapi_app


def get_services(fastapi_app: FastAPI) -> AppServices:
    services = getattr(fastapi_app.state, "services", None)
    if not isinstance(services, AppServices):
        raise RuntimeError("Services not initialised")
    return services


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/api/auth/signup", status_code=201)
    async def sign_up(payload: SignUpRequest) -> dict[str, Any]:
        services = get_services(fastapi_app)
        try:
            user = await services.auth.sign_up(
                payload.name,
                payload.email,
                payload.password,
                payload.confirm_password,
            )
        except StreamlistError as exc:
            raise _http_error(exc) from exc
        return {"user": user.to_payload()}

    @fastapi_app.post("/api/auth/signin")
    async def sign_in(payload: SignInRequest) -> dict[str, Any]:
        services = get_services(fastapi_app)
        try:
            user = await services.auth.sign_in(payload.email, payload.password)
        except StreamlistError as exc:
            raise _http_error(exc) from exc
        return {"user": user.to_payload()}

    @fastapi_app.post("/api/auth/signout")
    async def sign_out() -> dict[str, str]:
        services = get_services(fastapi_app)
        try:
            await services.auth.sign_out()
        except StreamlistError as exc:
            raise _http_error(exc) from exc
        return {"status": "signed_out"}

    # Routes below that only touch the stores are sync; FastAPI runs them in its threadpool.
    @fastapi_app.get("/api/auth/me")
    def current_user() -> dict[str, Any]:
        services = get_services(fastapi_app)
        user = services.register.current_user()
        return {
            "authenticated": user is not None,
            "state": services.register.state.value,
            "user": _user_payload(user),
        }

    @fastapi_app.patch("/api/auth/me")
    def update_profile(changes: dict[str, Any] = Body(...)) -> dict[str, Any]:
        services = get_services(fastapi_app)
        try:
            user = services.auth.update_profile(changes)
        except StreamlistError as exc:
            raise _http_error(exc) from exc
        return {"user": user.to_payload()}

    @fastapi_app.get("/api/wishlist")
    def list_wishlist(
        kind: str | None = None, order: str | None = None
    ) -> dict[str, Any]:
        services = get_services(fastapi_app)
        entries = services.wishlist.all()
        if kind:
            resolved = _resolve_kind(kind)
            entries = [entry for entry in entries if entry.kind == resolved]
        if order:
            try:
                entries = sort_entries(entries, order)  # type: ignore[arg-type]
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "items": [_entry_payload(entry) for entry in entries],
            "count": len(entries),
        }

    @fastapi_app.get("/api/wishlist/recent")
    def recent_wishlist(limit: int | None = Query(default=None, ge=1, le=100)) -> dict[str, Any]:
        services = get_services(fastapi_app)
        resolved_limit = limit or fastapi_app.state.settings.wishlist_recent_limit
        entries = services.wishlist.recently_added(resolved_limit)
        return {"items": [_entry_payload(entry) for entry in entries]}

    @fastapi_app.get("/api/wishlist/{item_id}")
    def wishlist_entry(item_id: int) -> dict[str, Any]:
        services = get_services(fastapi_app)
        entry = services.wishlist.get(item_id)
        if entry is None:
            raise HTTPException(status_code=404, detail="Not in wishlist")
        return _entry_payload(entry)

    @fastapi_app.post("/api/wishlist")
    def add_to_wishlist(item: CatalogItem) -> JSONResponse:
        services = get_services(fastapi_app)
        added = services.wishlist_view.add(item)
        if not added and not services.wishlist.contains(item.id):
            raise HTTPException(status_code=503, detail="Unable to save wishlist")
        return JSONResponse(
            {"added": added, "count": services.wishlist_view.count},
            status_code=201 if added else 200,
        )

    @fastapi_app.delete("/api/wishlist/{item_id}")
    def remove_from_wishlist(item_id: int) -> dict[str, Any]:
        services = get_services(fastapi_app)
        removed = services.wishlist_view.remove(item_id)
        return {"removed": removed, "count": services.wishlist_view.count}

    @fastapi_app.delete("/api/wishlist")
    def clear_wishlist() -> dict[str, Any]:
        services = get_services(fastapi_app)
        services.wishlist_view.clear()
        return {"count": services.wishlist_view.count}

    @fastapi_app.get("/api/catalog/{kind}/{category}")
    async def catalog_listing(
        kind: str, category: str, page: int = Query(default=1, ge=1, le=500)
    ) -> dict[str, Any]:
        catalog = _require_catalog(fastapi_app)
        resolved = _resolve_kind(kind)
        try:
            items = await catalog.list_category(resolved, category, page=page)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown category: {category}") from exc
        saved = {entry.id for entry in get_services(fastapi_app).wishlist.all()}
        return {
            "items": [
                {
                    **item.model_dump(mode="json", by_alias=True),
                    "posterUrl": image_url(item.poster_path),
                    "inWishlist": item.id in saved,
                }
                for item in items
            ]
        }

    @fastapi_app.get("/api/catalog/{kind}/{item_id}/trailer")
    async def catalog_trailer(kind: str, item_id: int) -> dict[str, Any]:
        catalog = _require_catalog(fastapi_app)
        resolved = _resolve_kind(kind)
        trailer = best_trailer(await catalog.get_item_trailers(item_id, resolved))
        if trailer is None:
            return {"trailer": None}
        return {
            "trailer": {
                **trailer.model_dump(mode="json", by_alias=True),
                "embedUrl": youtube_embed_url(trailer.key),
                "thumbnailUrl": youtube_thumbnail(trailer.key),
            }
        }


def _http_error(exc: StreamlistError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=400, detail=exc.message)


def _resolve_kind(value: str) -> ContentKind:
    try:
        return coerce_kind(value)  # type: ignore[return-value]
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Unsupported content type") from exc


def _require_catalog(fastapi_app: FastAPI) -> CatalogSource:
    catalog = get_services(fastapi_app).catalog
    if catalog is None:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "catalog_unavailable",
                "description": "TMDB_API_KEY must be configured to browse the catalog.",
            },
        )
    return catalog


def _user_payload(user: UserRecord | None) -> dict[str, Any] | None:
    return user.to_payload() if user is not None else None


def _entry_payload(entry: WishlistEntry) -> dict[str, Any]:
    payload = entry.model_dump(mode="json", by_alias=True)
    payload["posterUrl"] = image_url(entry.poster_path)
    return payload


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=default_settings.server_host,
        port=default_settings.server_port,
        reload=default_settings.environment == "development",
    )
