import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "CATALOG_CLI_OUTPUT"

_console = Console()

def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode

def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()

def print_list_result(views: List[Any]) -> None:
    """Print book views in the current output mode.
    - plain: 'ID - Title (N comments)' lines, or 'No books in library.'
    - json: JSON array of views
    - rich: Rich table
    """
    mode = get_output_mode()

    if not views:
        print("No books in library.")
        return

    if mode == "json":
        print(json.dumps([v.to_dict() for v in views], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Comments", style="white", justify="right")
        for v in views:
            table.add_row(v.id, escape(v.title), str(v.commentcount))
        _console.print(table)
    else:
        for v in views:
            print(f"{v.id} - {v.title} ({v.commentcount} comments)")

def print_book_result(view: Any) -> None:
    """Print one book with its comments in the current output mode."""
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(view.to_dict(), ensure_ascii=False))
    elif mode == "rich":
        lines = "\n".join(f"• {escape(c)}" for c in view.comments) or "[dim]No comments[/]"
        content = f"[bold]ID:[/] {view.id}\n[bold]Comments ({view.commentcount}):[/]\n{lines}"
        _console.print(Panel.fit(content, title=f"📖 {escape(view.title)}", border_style="blue"))
    else:
        print(f"Title: {view.title}")
        print(f"ID: {view.id}")
        print(f"Comments: {view.commentcount}")
        for c in view.comments:
            print(f"  - {c}")

def print_report_result(report: Dict[str, Any]) -> None:
    """Print a consistency report.
    - plain: one summary line plus one line per finding
    - json: JSON object
    - rich: Panel
    """
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(report, ensure_ascii=False))
        return

    findings = []
    for cid in report.get("orphans", []):
        findings.append(f"orphan comment {cid}")
    for kind in ("dangling", "misplaced", "unlisted", "duplicated"):
        for book_id, ids in report.get(kind, {}).items():
            findings.append(f"{kind} in book {book_id}: {', '.join(ids)}")

    if mode == "rich":
        if report.get("consistent"):
            content = "[bold green]Catalog is consistent.[/]"
        else:
            content = "\n".join(f"[yellow]{f}[/]" for f in findings)
        _console.print(Panel.fit(content, title="🔎 Consistency", border_style="blue"))
    else:
        if report.get("consistent"):
            print("Catalog is consistent.")
            return
        print(f"Found {len(findings)} problem(s):")
        for f in findings:
            print(f"  {f}")
