import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from book import Author, Book
from config import settings
from database import GraphStore, StoreError, StoreUnavailable, WriteFailed, create_store
from library import Library
from security import AccessGate, AuthenticationRequired, AuthorizationDenied, basic_auth, require_access
from utils.validators import TextValidator

logger = logging.getLogger(__name__)


# --- Models ---
class AuthorModel(BaseModel):
    id: Optional[str] = None
    name: str

    @classmethod
    def from_author(cls, author: Author) -> "AuthorModel":
        return cls(id=author.id, name=author.name)


class BookModel(BaseModel):
    id: Optional[str] = None
    title: str
    author: Optional[AuthorModel] = None

    @classmethod
    def from_book(cls, book: Book) -> "BookModel":
        author = AuthorModel.from_author(book.author) if book.author else None
        return cls(id=book.id, title=book.title, author=author)


class AddBookRequest(BaseModel):
    title: str = Field(..., min_length=1, description="Title of the new book")
    authorName: str = Field(..., min_length=1, description="Exact author name; created if unknown")

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not TextValidator.validate_title(value):
            raise ValueError("title must not be blank")
        return value

    @field_validator("authorName")
    @classmethod
    def _author_not_blank(cls, value: str) -> str:
        if not TextValidator.validate_author(value):
            raise ValueError("authorName must not be blank")
        return value


class HealthModel(BaseModel):
    status: str
    timestamp: str
    store: str
    store_ok: bool


# --- Wiring ---
def _wire(app: FastAPI, store: GraphStore) -> None:
    app.state.store = store
    app.state.library = Library(store)
    app.state.gate = AccessGate(store)


def _library(request: Request) -> Library:
    return request.app.state.library


# --- API Endpoints ---
router = APIRouter(prefix="/api", tags=["books"], dependencies=[Depends(require_access)])


@router.get("/books", response_model=List[BookModel])
def list_books(request: Request):
    return [BookModel.from_book(book) for book in _library(request).list_books()]


@router.post("/books", response_model=BookModel, status_code=status.HTTP_201_CREATED)
def add_book(payload: AddBookRequest, request: Request):
    try:
        book = _library(request).add_book(payload.title, payload.authorName)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return BookModel.from_book(book)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthenticationRequired)
    async def _unauthenticated(request: Request, exc: AuthenticationRequired):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": str(exc)},
            headers={"WWW-Authenticate": f'Basic realm="{settings.auth_realm}"'},
        )

    @app.exception_handler(AuthorizationDenied)
    async def _forbidden(request: Request, exc: AuthorizationDenied):
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError):
        problems = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        ]
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": problems})

    @app.exception_handler(StoreUnavailable)
    async def _store_unavailable(request: Request, exc: StoreUnavailable):
        logger.error(f"Store unavailable during {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Graph store unavailable"},
        )

    @app.exception_handler(WriteFailed)
    async def _write_failed(request: Request, exc: WriteFailed):
        logger.error(f"Write failed during {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Write failed"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def _unrouted(request: Request, exc: StarletteHTTPException):
        # Unmatched paths and methods still demand a login before they 404/405.
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            gate: AccessGate = request.app.state.gate
            try:
                credentials = await basic_auth(request)
                await run_in_threadpool(gate.check, credentials, request.method, request.url.path)
            except StarletteHTTPException:
                return await _unauthenticated(request, AuthenticationRequired("Invalid credentials"))
            except AuthenticationRequired as e:
                return await _unauthenticated(request, e)
            except AuthorizationDenied as e:
                return await _forbidden(request, e)
            except StoreUnavailable as e:
                return await _store_unavailable(request, e)
        return await http_exception_handler(request, exc)


def create_app(store: Optional[GraphStore] = None) -> FastAPI:
    """Build the API. A supplied ``store`` is used as-is and left open on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "store", None) is None
        if owned:
            _wire(app, create_store())
        try:
            app.state.store.ensure_constraints()
        except StoreError as e:
            logger.error(f"Could not ensure graph constraints at startup: {e}")
        try:
            yield
        finally:
            if owned:
                app.state.store.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    if store is not None:
        _wire(app, store)

    _install_error_handlers(app)
    app.include_router(router)

    @app.get("/openapi.json", include_in_schema=False, dependencies=[Depends(require_access)])
    def openapi_schema():
        return app.openapi()

    @app.get("/health", response_model=HealthModel, dependencies=[Depends(require_access)])
    def health(request: Request):
        """Lightweight health endpoint; reports whether the graph store answers."""
        store: GraphStore = request.app.state.store
        return HealthModel(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            store=store.backend,
            store_ok=store.ping(),
        )

    return app


app = create_app()
