import logging
import os
import subprocess
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import typer

from config import settings
from consistency import DeleteOutcome
from database import DocumentStore
from errors import NotFound, StorageError, ValidationError
from library import Library
from ui_helpers import print_book_result, print_list_result, print_report_result, set_output_mode

APP_NAME = "Catalog CLI"

# Database file chosen with --db, falls back to settings.database_file
_state = {"db_file": None}


@contextmanager
def open_library() -> Iterator[Library]:
    """Opens the store for one command and closes it afterwards."""
    with DocumentStore(db_file=_state["db_file"] or settings.database_file) as store:
        yield Library(store=store)


# --- Typer CLI application ---
app = typer.Typer(help=APP_NAME)

@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file"),
):
    """Global CLI options (output mode, database file)."""
    logging.basicConfig(level=settings.log_level)
    if output:
        set_output_mode(output)
    _state["db_file"] = db

@app.command("list")
def cli_list():
    """List every book with its comment count."""
    try:
        with open_library() as lib:
            print_list_result(lib.list_books())
    except StorageError as e:
        print(f"Storage error: {e}")
        raise typer.Exit(code=1)

@app.command("show")
def cli_show(book_id: str):
    """Show one book and its comments."""
    try:
        with open_library() as lib:
            print_book_result(lib.get_book(book_id))
    except NotFound:
        print(f"Book {book_id} not found.")
        raise typer.Exit(code=1)
    except StorageError as e:
        print(f"Storage error: {e}")
        raise typer.Exit(code=1)

@app.command("add")
def cli_add(title: str):
    """Add a book by title."""
    try:
        with open_library() as lib:
            book = lib.create_book(title)
        print(f"Successfully added: {book.title} ({book.id})")
    except ValidationError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    except StorageError as e:
        print(f"Storage error: {e}")
        raise typer.Exit(code=1)

@app.command("comment")
def cli_comment(book_id: str, text: str):
    """Attach a comment to a book."""
    try:
        with open_library() as lib:
            view = lib.attach_comment(book_id, text)
        print_book_result(view)
    except ValidationError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    except NotFound:
        print(f"Book {book_id} not found.")
        raise typer.Exit(code=1)
    except StorageError as e:
        print(f"Storage error: {e}")
        raise typer.Exit(code=1)

@app.command("remove")
def cli_remove(book_id: str):
    """Remove a book and its comments."""
    try:
        with open_library() as lib:
            outcome = lib.delete_book(book_id)
    except StorageError as e:
        print(f"Storage error: {e}")
        raise typer.Exit(code=1)
    if outcome is DeleteOutcome.DELETED:
        print(f"Book {book_id} has been removed.")
    else:
        print(f"Book {book_id} not found.")

@app.command("purge")
def cli_purge(yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt")):
    """Remove every book and every comment."""
    if not yes and not typer.confirm("Delete the whole catalog?"):
        print("Aborted.")
        return
    try:
        with open_library() as lib:
            lib.delete_all_books()
    except StorageError as e:
        print(f"Storage error: {e}")
        raise typer.Exit(code=1)
    print("Catalog emptied.")

@app.command("check")
def cli_check(repair: bool = typer.Option(False, "--repair", help="Fix the problems found")):
    """Report orphaned comments and stale references, optionally repairing them."""
    try:
        with open_library() as lib:
            report = lib.repair() if repair else lib.check_consistency()
    except StorageError as e:
        print(f"Storage error: {e}")
        raise typer.Exit(code=1)
    print_report_result(report.to_dict())
    if repair and not report.is_consistent:
        print("Repaired.")

@app.command("serve")
def cli_serve(reload: bool = typer.Option(False, "--reload", help="Restart on code changes")):
    """Start the API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    env = dict(os.environ)
    if _state["db_file"]:
        env["LIBRARY_DB_FILE"] = _state["db_file"]
    subprocess.run(args, env=env)


if __name__ == "__main__":
    app()
