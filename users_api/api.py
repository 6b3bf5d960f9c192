"""FastAPI application exposing the user CRUD and session endpoints."""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .database import build_store
from .errors import (
    AuthFailed,
    NotFound,
    StorageError,
    UserServiceError,
    ValidationError,
)
from .models import User, UserUpdate
from .security import BearerTokenAuth
from .store import UserStore
from .tokens import TokenClaims, TokenService

logger = logging.getLogger("users_api.api")

_FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

RequestModel = TypeVar("RequestModel", bound=BaseModel)


class UserFields(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

    def missing(self, *fields: str) -> List[str]:
        return [field for field in fields if not _is_supplied(getattr(self, field))]

    def blank(self) -> List[str]:
        return [
            field
            for field in ("name", "email", "password")
            if getattr(self, field) is not None and not _is_supplied(getattr(self, field))
        ]

    def to_update(self) -> UserUpdate:
        return UserUpdate(
            name=self.name.strip() if self.name is not None else None,
            email=self.email.strip() if self.email is not None else None,
            password=self.password,
        )


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    password: Optional[str] = None


class UserResponse(BaseModel):
    id: Union[int, str]
    name: str
    email: str
    created_at: datetime


class MessageResponse(BaseModel):
    message: str


class UserMessageResponse(BaseModel):
    message: str
    user: Optional[UserResponse] = None


class TokenResponse(BaseModel):
    message: str
    token: str


def _is_supplied(value: Optional[str]) -> bool:
    return value is not None and bool(value.strip())


def _join_fields(fields: List[str]) -> str:
    if len(fields) == 1:
        return fields[0]
    return f"{', '.join(fields[:-1])} and {fields[-1]}"


def _required_message(fields: List[str]) -> str:
    verb = "is" if len(fields) == 1 else "are"
    return f"{_join_fields(fields)} {verb} required"


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        created_at=user.created_at,
    )


async def read_payload(request: Request) -> Dict[str, Any]:
    """Decode a JSON or form-encoded request body into a plain mapping."""

    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(_FORM_CONTENT_TYPES):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ValidationError("Request body must be valid JSON") from exc
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def parse_payload(model: Type[RequestModel], payload: Dict[str, Any]) -> RequestModel:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        fields = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
        raise ValidationError(f"{_join_fields(fields) or 'body'} must be text") from exc


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure with the ``{"message": ...}`` envelope."""

    @app.exception_handler(UserServiceError)
    async def handle_service_error(_: Request, exc: UserServiceError):
        message = exc.message
        if isinstance(exc, StorageError):
            logger.error("Storage failure: %s", exc.message)
            message = exc.default_message
        return JSONResponse(status_code=exc.status_code, content={"message": message})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_: Request, exc: RequestValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "Invalid request"})

    @app.exception_handler(Exception)
    async def handle_unexpected(_: Request, exc: Exception):
        logger.exception("Unhandled error while serving request", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Internal server error"},
        )


def create_app(
    *,
    settings: Settings | None = None,
    store: UserStore | None = None,
    tokens: TokenService | None = None,
    initialize_store: bool = False,
) -> FastAPI:
    if settings is None:
        settings = load_settings()

    if store is None:
        store = build_store(settings)
        store.initialize()
    elif initialize_store:
        store.initialize()

    auth_enabled = settings.auth_enabled
    if auth_enabled and tokens is None:
        tokens = TokenService(settings.jwt_secret, ttl=settings.token_ttl)

    app = FastAPI(
        title="User Management API",
        description="CRUD endpoints over a persistent user store with token sessions",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.store = store
    app.state.tokens = tokens

    register_exception_handlers(app)

    def get_store() -> UserStore:
        return store

    router = APIRouter(prefix="/api/users", tags=["users"])

    if auth_enabled and tokens is not None:
        token_service = tokens
        bearer_auth = BearerTokenAuth(token_service)

        async def get_token_claims(request: Request) -> TokenClaims:
            return await bearer_auth(request)

        @router.post("/login", response_model=TokenResponse)
        async def login(
            payload: Dict[str, Any] = Depends(read_payload),
            db: UserStore = Depends(get_store),
        ) -> TokenResponse:
            credentials = parse_payload(LoginRequest, payload)
            missing = [
                field for field in ("email", "password") if not _is_supplied(getattr(credentials, field))
            ]
            if missing:
                raise ValidationError(_required_message(missing))

            user = await db.authenticate(credentials.email or "", credentials.password or "")
            if user is None:
                logger.warning("Failed login attempt for %s", credentials.email)
                raise AuthFailed("Authentication failed. Invalid email or password.")

            token = token_service.issue(user.id)
            logger.info("Login: %s (%s)", user.email, user.id)
            return TokenResponse(message="Login successful", token=token)

        @router.get("/profile", response_model=UserMessageResponse)
        async def read_profile(
            claims: TokenClaims = Depends(get_token_claims),
            db: UserStore = Depends(get_store),
        ) -> UserMessageResponse:
            user = await db.get_user(claims.user_id)
            if user is None:
                raise NotFound()
            return UserMessageResponse(message="Access granted", user=user_to_response(user))

    @router.get("", response_model=List[UserResponse])
    async def list_users(db: UserStore = Depends(get_store)) -> List[UserResponse]:
        users = await db.list_users()
        return [user_to_response(user) for user in users]

    @router.get("/{user_id}", response_model=UserResponse)
    async def read_user(user_id: str, db: UserStore = Depends(get_store)) -> UserResponse:
        user = await db.get_user(user_id)
        if user is None:
            raise NotFound()
        return user_to_response(user)

    @router.post("", response_model=UserMessageResponse, status_code=status.HTTP_201_CREATED)
    async def create_user(
        payload: Dict[str, Any] = Depends(read_payload),
        db: UserStore = Depends(get_store),
    ) -> UserMessageResponse:
        fields = parse_payload(UserFields, payload)
        required = ("name", "email", "password") if auth_enabled else ("name", "email")
        missing = fields.missing(*required)
        if missing:
            raise ValidationError(_required_message(missing))
        if fields.password is not None and not _is_supplied(fields.password):
            raise ValidationError("password must not be empty")

        changes = fields.to_update()
        user = await db.create_user(changes.name or "", changes.email or "", changes.password)
        logger.info("Created user %s", user.id)
        return UserMessageResponse(message="User created successfully", user=user_to_response(user))

    @router.put(
        "/{user_id}",
        response_model=UserMessageResponse,
        response_model_exclude_none=True,
    )
    async def update_user(
        user_id: str,
        payload: Dict[str, Any] = Depends(read_payload),
        db: UserStore = Depends(get_store),
    ) -> UserMessageResponse:
        fields = parse_payload(UserFields, payload)
        blank = fields.blank()
        if blank:
            raise ValidationError(f"{_join_fields(blank)} must not be empty")

        changes = fields.to_update()
        if changes.is_empty():
            raise ValidationError("At least one of name, email or password must be provided")

        user = await db.update_user(user_id, changes)
        if user is None:
            raise NotFound()
        logger.info("Updated user %s", user.id)
        return UserMessageResponse(
            message="User updated successfully",
            user=user_to_response(user) if auth_enabled else None,
        )

    @router.delete("/{user_id}", response_model=MessageResponse)
    async def delete_user(user_id: str, db: UserStore = Depends(get_store)) -> MessageResponse:
        deleted = await db.delete_user(user_id)
        if not deleted:
            raise NotFound()
        logger.info("Deleted user %s", user_id)
        return MessageResponse(message="User deleted successfully")

    app.include_router(router)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    static_dir = settings.static_dir
    if static_dir is not None:
        if static_dir.is_dir():
            app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")
        else:
            logger.warning("Static directory %s does not exist; not serving assets", static_dir)

    return app


__all__ = [
    "LoginRequest",
    "MessageResponse",
    "TokenResponse",
    "UserFields",
    "UserMessageResponse",
    "UserResponse",
    "create_app",
    "parse_payload",
    "read_payload",
    "register_exception_handlers",
    "user_to_response",
]
