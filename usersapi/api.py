"""FastAPI application exposing the user CRUD endpoints."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Type, TypeVar

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .database import Database, StorageError

logger = logging.getLogger("usersapi.api")

_ALL_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")

ModelT = TypeVar("ModelT", bound=BaseModel)


class CreateUserRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class UpdateUserRequest(BaseModel):
    old_email: Optional[str] = Field(default=None, alias="oldEmail")
    name: Optional[str] = None
    email: Optional[str] = None


class DeleteUserRequest(BaseModel):
    email: Optional[str] = None


class UserEntry(BaseModel):
    name: str
    email: str


def _json_body(model: Type[ModelT]) -> Callable[[Request], Any]:
    """Decode the request body as JSON whatever its declared content type."""

    async def decode(request: Request) -> ModelT:
        raw = await request.body()
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON") from exc
        # A literal null decodes to an empty request and fails the presence check.
        if data is None:
            data = {}
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            logger.debug("Rejected request body: %s", exc.errors())
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON") from exc

    return decode


def _storage_failure(exc: StorageError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Database error: {exc}",
    )


def _reject_other_methods(router: APIRouter, path: str, allowed: str) -> None:
    """Answer 405 for every method on ``path`` except ``allowed``."""

    methods: Sequence[str] = [method for method in _ALL_METHODS if method != allowed]

    def method_not_allowed() -> None:
        raise HTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail="Method not allowed",
            headers={"Allow": allowed},
        )

    router.add_api_route(
        path,
        method_not_allowed,
        methods=list(methods),
        include_in_schema=False,
        name=f"reject:{path}",
    )


def build_router(get_db: Callable[[], Database]) -> APIRouter:
    """Create the router with the four user routes."""

    router = APIRouter()

    @router.post("/users", status_code=status.HTTP_201_CREATED, response_class=PlainTextResponse)
    def create_user(
        payload: CreateUserRequest = Depends(_json_body(CreateUserRequest)),
        db: Database = Depends(get_db),
    ) -> PlainTextResponse:
        if not payload.name or not payload.email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Name and email are required",
            )
        try:
            db.create_user(payload.name, payload.email)
        except StorageError as exc:
            raise _storage_failure(exc) from exc
        return PlainTextResponse("User added", status_code=status.HTTP_201_CREATED)

    @router.get("/users/list", response_model=List[UserEntry])
    def list_users(db: Database = Depends(get_db)) -> List[UserEntry]:
        try:
            users = db.list_users()
        except StorageError as exc:
            raise _storage_failure(exc) from exc
        return [UserEntry(name=user.name, email=user.email) for user in users]

    @router.put("/users/update", response_class=PlainTextResponse)
    def update_user(
        payload: UpdateUserRequest = Depends(_json_body(UpdateUserRequest)),
        db: Database = Depends(get_db),
    ) -> PlainTextResponse:
        if not payload.old_email or not payload.name or not payload.email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="All fields are required",
            )
        try:
            affected = db.update_user(payload.old_email, name=payload.name, email=payload.email)
        except StorageError as exc:
            raise _storage_failure(exc) from exc
        logger.info("Update for %s affected %d row(s)", payload.old_email, affected)
        return PlainTextResponse("User updated")

    @router.delete("/users/delete", response_class=PlainTextResponse)
    def delete_user(
        payload: DeleteUserRequest = Depends(_json_body(DeleteUserRequest)),
        db: Database = Depends(get_db),
    ) -> PlainTextResponse:
        if not payload.email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email is required",
            )
        try:
            affected = db.delete_user(payload.email)
        except StorageError as exc:
            raise _storage_failure(exc) from exc
        logger.info("Delete for %s affected %d row(s)", payload.email, affected)
        return PlainTextResponse("User deleted")

    # Registered after the real handlers so that the matching method wins.
    _reject_other_methods(router, "/users", "POST")
    _reject_other_methods(router, "/users/list", "GET")
    _reject_other_methods(router, "/users/update", "PUT")
    _reject_other_methods(router, "/users/delete", "DELETE")

    return router


def create_app(
    *,
    database: Database,
    static_dir: Optional[Path] = None,
    lifespan: Any = None,
) -> FastAPI:
    """Instantiate the FastAPI application around an existing :class:`Database`."""

    app = FastAPI(
        title="Users API",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.database = database

    def get_db() -> Database:
        return database

    app.include_router(build_router(get_db))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_: Request, exc: StarletteHTTPException):
        return PlainTextResponse(
            str(exc.detail),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    if static_dir is not None:
        if static_dir.is_dir():
            # Mounted last; every API path above is matched before the catch-all.
            app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")
        else:
            logger.warning("Static directory %s does not exist; static files disabled", static_dir)

    return app


__all__ = ["create_app", "build_router"]
