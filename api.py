import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field
from pydantic import ValidationError as PayloadError

from config import settings
from consistency import DeleteOutcome
from database import DocumentStore
from errors import NotFound, StorageError, ValidationError
from library import Library

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

MISSING_TITLE = "missing required field title"
MISSING_COMMENT = "missing required field comment"
NO_BOOK = "no book exists"
DELETE_SUCCESSFUL = "delete successful"
COMPLETE_DELETE_SUCCESSFUL = "complete delete successful"
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


# --- Models ---
class BookCreateModel(BaseModel):
    title: Optional[str] = Field(default=None, description="Title of the new book")


class CommentCreateModel(BaseModel):
    comment: Optional[str] = Field(default=None, description="Comment text")


class CreatedBookModel(BaseModel):
    id: str = Field(alias="_id")
    title: str

    model_config = {"populate_by_name": True}


class BookViewModel(BaseModel):
    id: str = Field(alias="_id")
    title: str
    comments: List[str]
    commentcount: int
    version: int = Field(alias="__v")

    model_config = {"populate_by_name": True}


# --- Request bodies ---
async def read_payload(request: Request) -> dict:
    """Fields posted either as JSON or as a form. An empty body gives an empty dict."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return dict(form)
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": f"JSON decode error: {e}", "input": {}}]
        )
    return data if isinstance(data, dict) else {}


def _validate(model, data: dict):
    try:
        return model.model_validate(data)
    except PayloadError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False))


async def book_payload(request: Request) -> BookCreateModel:
    return _validate(BookCreateModel, await read_payload(request))


async def comment_payload(request: Request) -> CommentCreateModel:
    return _validate(CommentCreateModel, await read_payload(request))


def create_app(db_file: Optional[str] = None) -> FastAPI:
    """Builds the API. The document store is opened on startup and closed on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = DocumentStore(db_file=db_file or settings.database_file).open()
        app.state.library = Library(store=store)
        try:
            yield
        finally:
            app.state.library.close()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        # Already logged where it was raised
        return JSONResponse(status_code=500, content={"detail": "Storage unavailable"})

    def get_library(request: Request) -> Library:
        return request.app.state.library

    # --- Health check ---
    @app.get("/health")
    def health(library: Library = Depends(get_library)):
        db_ok = True
        total_books = 0
        try:
            library.store.ping()
            total_books = library.count_books()
        except StorageError:
            db_ok = False
        return {
            "status": "healthy" if db_ok else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "db": db_ok,
            "total_books": total_books,
        }

    # --- Books ---
    @app.get("/api/books", response_model=List[BookViewModel], response_model_by_alias=True)
    def list_books(library: Library = Depends(get_library)):
        return [view.to_dict() for view in library.list_books()]

    @app.post("/api/books", response_model=CreatedBookModel, response_model_by_alias=True)
    def create_book(payload: BookCreateModel = Depends(book_payload),
                    library: Library = Depends(get_library)):
        title = payload.title
        try:
            book = library.create_book(title)
        except ValidationError:
            return PlainTextResponse(MISSING_TITLE)
        return {"_id": book.id, "title": book.title}

    @app.delete("/api/books", response_class=PlainTextResponse)
    def delete_all_books(library: Library = Depends(get_library)):
        library.delete_all_books()
        return COMPLETE_DELETE_SUCCESSFUL

    @app.get("/api/books/{book_id}", response_model=BookViewModel, response_model_by_alias=True)
    def get_book(book_id: str, library: Library = Depends(get_library)):
        try:
            return library.get_book(book_id).to_dict()
        except NotFound:
            return PlainTextResponse(NO_BOOK)

    @app.post("/api/books/{book_id}", response_model=BookViewModel, response_model_by_alias=True)
    def add_comment(book_id: str, payload: CommentCreateModel = Depends(comment_payload),
                    library: Library = Depends(get_library)):
        text = payload.comment
        try:
            return library.attach_comment(book_id, text).to_dict()
        except ValidationError:
            return PlainTextResponse(MISSING_COMMENT)
        except NotFound:
            return PlainTextResponse(NO_BOOK)

    @app.delete("/api/books/{book_id}", response_class=PlainTextResponse)
    def delete_book(book_id: str, library: Library = Depends(get_library)):
        if library.delete_book(book_id) is DeleteOutcome.NOT_FOUND:
            return NO_BOOK
        return DELETE_SUCCESSFUL

    # --- Maintenance ---
    @app.get("/api/maintenance/consistency")
    def check_consistency(library: Library = Depends(get_library)):
        return library.check_consistency().to_dict()

    @app.post("/api/maintenance/repair")
    def repair(library: Library = Depends(get_library)):
        return library.repair().to_dict()

    return app


app = create_app()
