#!/usr/bin/env python3
"""
Minutes Extract: budgets and action items from scanned meeting minutes.
Main CLI entry point.
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import (
    validate_config, PAGE_LIMIT, OCR_LANGS, STRUCTURING_PROVIDER, STORE_DIR, BLOB_DIR,
    MAX_UPLOAD_BYTES,
)
from minutes_pipeline import ExtractionPipeline, JsonFileStore, LocalBlobStore, PersistFailure, Recognizer
from minutes_pipeline.store import document_status
from minutes_pipeline.structurer import StructuredExtractor

app = typer.Typer(
    name="minutes-extract",
    help="Extract budget allocations and action items from scanned meeting minutes.",
    add_completion=False,
)
console = Console()


def _require_config():
    config_status = validate_config()
    if not config_status["valid"]:
        console.print("[bold red]Configuration Error:[/]")
        for issue in config_status["issues"]:
            console.print(f"  • {issue}")
        console.print("\n[dim]Please check your .env file.[/]")
        raise typer.Exit(1)
    return config_status


def _run_pipeline(
    pdf_bytes: bytes,
    source_file_name: str,
    store_dir: Path,
    page_limit: int,
    langs: str,
    provider: str,
    short_id: Optional[str],
    verbose: bool,
    as_json: bool,
):
    pipeline = ExtractionPipeline(
        store=JsonFileStore(store_dir),
        extractor=StructuredExtractor(provider=provider),
        recognizer=Recognizer(languages=langs),
        page_limit=page_limit,
        verbose=verbose,
    )

    try:
        result = pipeline.run(pdf_bytes, source_file_name, short_id=short_id)
    except PersistFailure as e:
        console.print_json(json.dumps(e.to_envelope()))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/]")
        raise typer.Exit(130)

    payload = result.summary() if result.succeeded else result.envelope()
    if as_json:
        console.print_json(json.dumps(payload))
    elif result.succeeded:
        console.print(Panel.fit(
            f"[bold green]✓ Extraction complete[/]\n\n"
            f"[dim]Short ID:[/] {result.short_id}\n"
            f"[dim]Budget items:[/] {payload['summary']['budgetItems']}\n"
            f"[dim]Action items:[/] {payload['summary']['actionItems']}\n"
            f"[dim]Total budget:[/] ₹{payload['summary']['totalBudget']:,}",
            title="[bold green]Success[/]",
            border_style="green",
        ))
    else:
        console.print(Panel.fit(
            f"[bold red]{payload['error']}[/]\n\n"
            f"[dim]Details:[/] {payload['details']}\n"
            f"[dim]Short ID:[/] {payload['shortId']}",
            title="[bold red]Error[/]",
            border_style="red",
        ))

    if not result.succeeded:
        raise typer.Exit(1)


@app.command()
def extract(
    pdf_path: Path = typer.Argument(
        ...,
        help="Path to the PDF file to extract",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    page_limit: int = typer.Option(
        PAGE_LIMIT,
        "--page-limit", "-p",
        help="Maximum number of pages to process",
        min=1,
    ),
    langs: str = typer.Option(
        OCR_LANGS,
        "--langs", "-l",
        help="Tesseract language set (e.g. 'tam+eng')",
    ),
    provider: str = typer.Option(
        STRUCTURING_PROVIDER,
        "--provider",
        help="Structuring provider: 'gemini' or 'openai'",
    ),
    short_id: str = typer.Option(
        None,
        "--short-id",
        help="Re-run under an existing shortId (replaces the stored document)",
    ),
    store_dir: Path = typer.Option(
        STORE_DIR,
        "--store-dir", "-o",
        help="Directory holding extracted documents",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: bool = typer.Option(
        True,
        "--verbose/--quiet", "-v/-q",
        help="Show detailed progress",
    ),
):
    """
    Extract budgets and action items from a local PDF.

    The result is stored under a shortId whether or not extraction succeeds.
    """
    _require_config()
    _run_pipeline(
        pdf_path.read_bytes(), pdf_path.name, store_dir, page_limit, langs, provider,
        short_id, verbose, as_json,
    )


@app.command()
def upload(
    pdf_path: Path = typer.Argument(..., exists=True, file_okay=True, dir_okay=False, readable=True),
    blob_dir: Path = typer.Option(BLOB_DIR, "--blob-dir", help="Blob storage directory"),
):
    """Store a PDF in blob storage and print its key."""
    data = pdf_path.read_bytes()
    if not data.startswith(b"%PDF"):
        console.print("[bold red]Only PDF files are allowed[/]")
        raise typer.Exit(1)
    if len(data) > MAX_UPLOAD_BYTES:
        console.print(f"[bold red]File too large. Maximum size is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB.[/]")
        raise typer.Exit(1)

    key = LocalBlobStore(blob_dir).put(data, pdf_path.name)
    console.print(f"[green]✓[/] Uploaded [bold]{pdf_path.name}[/] ({len(data):,} bytes)")
    console.print(key)


@app.command("extract-blob")
def extract_blob(
    file_key: str = typer.Argument(..., help="Blob key returned by 'upload'"),
    blob_dir: Path = typer.Option(BLOB_DIR, "--blob-dir", help="Blob storage directory"),
    page_limit: int = typer.Option(PAGE_LIMIT, "--page-limit", "-p", min=1),
    langs: str = typer.Option(OCR_LANGS, "--langs", "-l"),
    provider: str = typer.Option(STRUCTURING_PROVIDER, "--provider"),
    store_dir: Path = typer.Option(STORE_DIR, "--store-dir", "-o"),
    as_json: bool = typer.Option(False, "--json"),
    verbose: bool = typer.Option(True, "--verbose/--quiet", "-v/-q"),
):
    """Extract from a PDF previously stored with 'upload'."""
    _require_config()
    try:
        data = LocalBlobStore(blob_dir).get(file_key)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1)

    _run_pipeline(
        data, file_key.split("/")[-1], store_dir, page_limit, langs, provider,
        None, verbose, as_json,
    )


@app.command()
def show(
    short_id: str = typer.Argument(...),
    store_dir: Path = typer.Option(STORE_DIR, "--store-dir", "-o"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw document"),
):
    """Show a stored extraction."""
    document = JsonFileStore(store_dir).get(short_id)
    if document is None:
        console.print(f"[red]Extract not found:[/] {short_id}")
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps(document, ensure_ascii=False))
        return

    meta = document.get("meta", {})
    console.print(Panel.fit(
        f"[bold]{meta.get('municipality') or 'Unknown municipality'}[/]\n"
        f"[dim]Meeting:[/] {meta.get('meetingType') or '-'} {meta.get('meetingDate') or ''}\n"
        f"[dim]Source:[/] {meta.get('sourceFileName')}  [dim]uploaded {meta.get('uploadedAt')}[/]",
        title=f"[bold]{short_id}[/]",
    ))

    budgets = Table(title="Budget Allocations")
    budgets.add_column("Purpose")
    budgets.add_column("Department")
    budgets.add_column("Amount (INR)", justify="right")
    budgets.add_column("Pages", justify="center")
    for budget in document.get("budgets", []):
        budgets.add_row(
            budget.get("purpose", ""),
            budget.get("department") or "-",
            f"{budget['amount']['amount']:,}",
            ", ".join(str(p) for p in budget.get("pages") or []),
        )
    console.print(budgets)

    actions = Table(title="Action Items")
    actions.add_column("Title")
    actions.add_column("Department")
    actions.add_column("Status")
    actions.add_column("Deadline")
    for action in document.get("actions", []):
        actions.add_row(
            action.get("title", ""),
            action.get("department") or "-",
            action.get("status", "unknown"),
            action.get("deadline") or "-",
        )
    console.print(actions)

    totals = document.get("totals", {})
    console.print(f"\n[bold]Total budget:[/] ₹{totals.get('budgetTotal', 0):,}")
    for entry in totals.get("byDept", []):
        console.print(f"  [dim]{entry['department']}:[/] ₹{entry['total']:,}")

    for error in document.get("errors") or []:
        console.print(f"[red]✗ {error}[/]")


@app.command()
def status(
    short_id: str = typer.Argument(...),
    store_dir: Path = typer.Option(STORE_DIR, "--store-dir", "-o"),
):
    """Show whether an extraction completed or recorded errors."""
    document = JsonFileStore(store_dir).get(short_id)
    if document is None:
        console.print_json(json.dumps({"error": "Extract not found", "shortId": short_id}))
        raise typer.Exit(1)

    console.print_json(json.dumps({
        "shortId": short_id,
        "status": document_status(document),
        "summary": {
            "budgetItems": len(document.get("budgets", [])),
            "actionItems": len(document.get("actions", [])),
            "totalBudget": document.get("totals", {}).get("budgetTotal", 0),
            "errors": len(document.get("errors") or []),
        },
    }))


@app.command("list")
def list_extracts(
    page: int = typer.Option(1, "--page", min=1),
    per_page: int = typer.Option(20, "--per-page", min=1, max=100),
    store_dir: Path = typer.Option(STORE_DIR, "--store-dir", "-o"),
):
    """List stored extractions, newest first."""
    listing = JsonFileStore(store_dir).list_documents(
        page=page,
        per_page=per_page,
        fields=["meta.sourceFileName", "meta.uploadedAt", "meta.municipality", "totals.budgetTotal", "errors"],
    )

    table = Table(title=f"Extracts (page {listing['page']}, {listing['total']} total)")
    table.add_column("Short ID")
    table.add_column("Source")
    table.add_column("Uploaded", style="dim")
    table.add_column("Total (INR)", justify="right")
    table.add_column("Status", justify="center")
    for item in listing["items"]:
        meta = item.get("meta", {})
        state = document_status(item)
        table.add_row(
            item["shortId"],
            meta.get("sourceFileName", ""),
            meta.get("uploadedAt", ""),
            f"{item.get('totals', {}).get('budgetTotal', 0):,}",
            "[green]✓[/]" if state == "completed" else "[red]✗[/]",
        )
    console.print(table)


@app.command()
def delete(
    short_id: str = typer.Argument(...),
    store_dir: Path = typer.Option(STORE_DIR, "--store-dir", "-o"),
):
    """Delete a stored extraction."""
    if not JsonFileStore(store_dir).delete(short_id):
        console.print(f"[red]Extract not found:[/] {short_id}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Deleted {short_id}")


@app.command()
def check():
    """
    Check configuration and dependencies.
    """
    console.print("[bold]Checking Minutes Extract Configuration...[/]\n")

    config_status = validate_config()

    if config_status["valid"]:
        console.print("[green]✓[/] API keys configured")
    else:
        console.print("[red]✗[/] Configuration issues:")
        for issue in config_status["issues"]:
            console.print(f"    • {issue}")

    console.print("\n[bold]Dependencies:[/]")

    dependencies = [
        ("pymupdf", "fitz"),
        ("pytesseract", "pytesseract"),
        ("Pillow", "PIL"),
        ("google-generativeai", "google.generativeai"),
        ("openai", "openai"),
        ("jsonschema", "jsonschema"),
        ("rich", "rich"),
        ("typer", "typer"),
    ]

    all_ok = True
    for name, import_name in dependencies:
        try:
            __import__(import_name)
            console.print(f"  [green]✓[/] {name}")
        except ImportError:
            console.print(f"  [red]✗[/] {name} - not installed")
            all_ok = False

    console.print("\n[bold]Tesseract:[/]")
    try:
        import pytesseract
        version = pytesseract.get_tesseract_version()
        console.print(f"  [green]✓[/] tesseract {version}")
        languages = set(pytesseract.get_languages(config=""))
        missing = [lang for lang in OCR_LANGS.split("+") if lang not in languages]
        if missing:
            console.print(f"  [red]✗[/] Missing language data: {', '.join(missing)}")
            all_ok = False
    except Exception as e:
        console.print(f"  [red]✗[/] Tesseract error: {e}")
        all_ok = False

    if all_ok and config_status["valid"]:
        console.print("\n[bold green]All checks passed! Ready to extract.[/]")
    else:
        console.print("\n[yellow]Some issues need attention.[/]")
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    console.print("[bold]Minutes Extract[/] - meeting minutes to budgets and action items")
    console.print("[dim]Version 0.1.0[/]")


if __name__ == "__main__":
    app()
