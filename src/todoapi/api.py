"""FastAPI application exposing the todo and administration endpoints."""

import logging
from contextlib import asynccontextmanager
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import Counter
from pydantic import BaseModel, EmailStr, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from . import services
from .auth import get_current_identity, get_storage, require_admin
from .config import settings, validate_runtime_config
from .errors import AuthenticationError, TodoApiError
from .schemas import AuthResult, Todo, TodoChanges, TokenIdentity, User
from .storage import StorageGateway


logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def initialize(storage: StorageGateway) -> None:
    """Validate configuration, create tables and seed the first admin."""
    validate_runtime_config()
    if settings.storage_backend.lower() == "sql":
        from .database import init_db

        init_db()

    if settings.first_admin_email and settings.first_admin_password:
        services.ensure_admin(storage, settings.first_admin_email, settings.first_admin_password)
    else:
        logger.info("No FIRST_ADMIN_* settings. Skipping admin seed.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    initialize(get_storage())
    yield


app = FastAPI(title=settings.api_title, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics."""
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code),
        ).inc()
        logger.info(
            "response %s %s status %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response
    except Exception:
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status="500",
        ).inc()
        logger.exception(
            "error handling %s %s", request.method, request.url.path
        )
        raise


@app.exception_handler(TodoApiError)
async def handle_domain_error(request: Request, exc: TodoApiError) -> JSONResponse:
    """Map a domain error to its status code and generic message."""
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc
        )
    else:
        logger.debug("%s on %s %s", type(exc).__name__, request.method, request.url.path)

    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code, content={"detail": exc.detail}, headers=headers
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and path parameters are plain 400s."""
    logger.debug("invalid request %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "Invalid request"}
    )


@app.get("/health")
def health_check():
    return {"status": "ok"}


class RegisterRequest(BaseModel):
    """Request body for registering a new user."""

    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    """Request body for user login."""

    email: EmailStr
    password: str


class TodoCreate(BaseModel):
    """Request body for creating a todo."""

    title: str
    description: str | None = None


class RoleUpdate(BaseModel):
    role: str


class MessageResponse(BaseModel):
    message: str


router = APIRouter()
admin_router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


@router.post("/register", response_model=AuthResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.auth_rate_limit)
def register(
    request: Request, payload: RegisterRequest, storage: StorageGateway = Depends(get_storage)
):
    return services.register(storage, payload.email, payload.password)


@router.post("/login", response_model=AuthResult)
@limiter.limit(settings.auth_rate_limit)
def login(
    request: Request, payload: LoginRequest, storage: StorageGateway = Depends(get_storage)
):
    return services.login(storage, payload.email, payload.password)


@router.get("/profile", response_model=User)
def get_profile(
    identity: TokenIdentity = Depends(get_current_identity),
    storage: StorageGateway = Depends(get_storage),
):
    """Return the account behind the presented token."""
    return services.get_profile(storage, identity.user_id)


@router.get("/todos", response_model=List[Todo])
def list_todos(
    identity: TokenIdentity = Depends(get_current_identity),
    storage: StorageGateway = Depends(get_storage),
):
    return services.list_todos(storage, identity.user_id)


@router.get("/todos/{todo_id}", response_model=Todo)
def get_todo(
    todo_id: UUID,
    identity: TokenIdentity = Depends(get_current_identity),
    storage: StorageGateway = Depends(get_storage),
):
    return services.get_todo(storage, identity.user_id, todo_id)


@router.post("/todos", response_model=Todo, status_code=status.HTTP_201_CREATED)
def create_todo(
    payload: TodoCreate,
    identity: TokenIdentity = Depends(get_current_identity),
    storage: StorageGateway = Depends(get_storage),
):
    return services.create_todo(storage, identity.user_id, payload.title, payload.description)


@router.put("/todos/{todo_id}", response_model=Todo)
def update_todo(
    todo_id: UUID,
    payload: TodoChanges,
    identity: TokenIdentity = Depends(get_current_identity),
    storage: StorageGateway = Depends(get_storage),
):
    """Apply only the fields present in the body."""
    return services.update_todo(storage, identity.user_id, todo_id, payload)


@router.delete("/todos/{todo_id}", response_model=MessageResponse)
def delete_todo(
    todo_id: UUID,
    identity: TokenIdentity = Depends(get_current_identity),
    storage: StorageGateway = Depends(get_storage),
):
    services.delete_todo(storage, identity.user_id, todo_id)
    return MessageResponse(message="todo deleted successfully")


@admin_router.get("/users", response_model=List[User])
def list_users(storage: StorageGateway = Depends(get_storage)):
    return services.list_users(storage)


@admin_router.get("/users/{user_id}", response_model=User)
def get_user(user_id: UUID, storage: StorageGateway = Depends(get_storage)):
    return services.get_user(storage, user_id)


@admin_router.put("/users/{user_id}/role", response_model=User)
def update_user_role(
    user_id: UUID, payload: RoleUpdate, storage: StorageGateway = Depends(get_storage)
):
    return services.update_user_role(storage, user_id, payload.role)


@admin_router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: UUID,
    identity: TokenIdentity = Depends(require_admin),
    storage: StorageGateway = Depends(get_storage),
):
    services.delete_user(storage, identity.user_id, user_id)
    return MessageResponse(message="user deleted successfully")


@admin_router.get("/todos", response_model=List[Todo])
def list_all_todos(storage: StorageGateway = Depends(get_storage)):
    """Return every user's todos."""
    return services.list_all_todos(storage)


router.include_router(admin_router)
app.include_router(router, prefix=settings.api_prefix)
