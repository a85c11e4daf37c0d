"""
Command-line interface for intelliocr.

Analyze images against a field list, manage few-shot reference examples and
the saved workspace configuration.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from intelliocr import storage
from intelliocr.credentials import resolve_credential, validate_credential
from intelliocr.errors import IntelliOCRError
from intelliocr.export import default_export_name, write_csv
from intelliocr.pipeline import analyze_batch, create_reference_example
from intelliocr.schemas import ValidationStatus, normalize_fields

app = typer.Typer(
    name="intelliocr",
    help="Extract structured fields from images with a multimodal model",
    add_completion=False,
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def analyze(
    images: List[Path] = typer.Argument(..., help="Image files to analyze", exists=True, dir_okay=False),
    field: Optional[List[str]] = typer.Option(
        None, "--field", "-f", help="Field to extract (repeatable); defaults to saved fields"
    ),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Additional extraction rules"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="API key (overrides saved key)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write results as CSV"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", min=1),
    save: bool = typer.Option(False, "--save", help="Save fields and prompt to the workspace"),
):
    """Extract fields from one or more images."""
    user_config = storage.load_user_config()
    fields = normalize_fields(field or user_config.fields)
    custom_prompt = prompt if prompt is not None else user_config.custom_prompt

    if not fields:
        console.print("[red]Error:[/red] No fields configured. Pass --field at least once.")
        raise typer.Exit(1)

    if save:
        storage.save_user_config(fields, custom_prompt, user_config.lang)

    try:
        credential = resolve_credential(api_key or storage.load_api_key())
    except IntelliOCRError as e:
        console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(1)

    examples = storage.load_reference_examples()

    with console.status(f"Analyzing {len(images)} image(s)..."):
        outcomes = asyncio.run(
            analyze_batch(
                credential,
                [str(p) for p in images],
                fields,
                custom_prompt,
                examples,
                concurrency=concurrency,
            )
        )

    table = Table(title="Extraction results")
    table.add_column("File", style="cyan")
    table.add_column("#", justify="right")
    for name in fields:
        table.add_column(name)

    failed = 0
    for outcome in outcomes:
        if not outcome.succeeded:
            failed += 1
            message = f"[red]{escape(outcome.error_message or '')}[/red]"
            table.add_row(outcome.source, "", message, *[""] * (len(fields) - 1))
            continue
        for index, record in enumerate(outcome.records, start=1):
            values = ["" if record.get(f) is None else str(record.get(f)) for f in fields]
            table.add_row(outcome.source, str(index), *values)
    console.print(table)

    if output is not None:
        if output.is_dir():
            output = output / default_export_name()
        count = write_csv(outcomes, fields, output)
        console.print(f"[green]✓[/green] Wrote {count} row(s) to {output}")

    if failed:
        console.print(f"[yellow]{failed} of {len(outcomes)} image(s) failed[/yellow]")
        raise typer.Exit(1)


@app.command("validate-key")
def validate_key(
    api_key: Optional[str] = typer.Argument(None, help="API key to check; defaults to the saved key"),
    save: bool = typer.Option(False, "--save", help="Save the key if it is valid"),
):
    """Check an API key with a minimal request."""
    key = api_key if api_key is not None else storage.load_api_key()

    with console.status("Validating API key..."):
        result = asyncio.run(validate_credential(key))

    if result.status == ValidationStatus.VALID:
        console.print("[green]✓[/green] API key is valid")
        if save:
            storage.save_api_key(key.strip())
            console.print("API key saved")
        return

    if result.status == ValidationStatus.QUOTA:
        console.print("[yellow]![/yellow] API key is rate limited or out of quota.")
        console.print("Please try again shortly.")
    else:
        console.print("[red]✗[/red] Invalid API key. Please check and re-enter it.")
    if result.detail:
        console.print(f"  {escape(result.detail)}", style="dim")
    raise typer.Exit(1)


@app.command()
def teach(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image with verified output"),
    records: str = typer.Option(
        ..., "--records", "-r", help="Verified output as a JSON object or array of objects"
    ),
):
    """Add a verified extraction as a few-shot reference example."""
    try:
        parsed = json.loads(records)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] --records is not valid JSON: {e}")
        raise typer.Exit(1)
    if not isinstance(parsed, list):
        parsed = [parsed]
    if not all(isinstance(item, dict) for item in parsed):
        console.print("[red]Error:[/red] --records must be a JSON object or an array of objects")
        raise typer.Exit(1)

    try:
        example = asyncio.run(create_reference_example(str(image), parsed))
    except IntelliOCRError as e:
        console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(1)

    if not storage.add_reference_example(example):
        console.print("[red]Error:[/red] Examples too large to save")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Added example {example.id} ({image.name})")


@app.command()
def examples():
    """List stored reference examples (most recent last)."""
    stored = storage.load_reference_examples()
    if not stored:
        console.print("No reference examples")
        return

    table = Table(title=f"Reference examples ({len(stored)})")
    table.add_column("ID", style="cyan")
    table.add_column("Source")
    table.add_column("Records", justify="right")
    for example in stored:
        table.add_row(example.id, example.source_name, str(len(example.records)))
    console.print(table)


@app.command()
def forget(example_id: str = typer.Argument(..., help="Example ID to remove")):
    """Remove a reference example."""
    if not storage.remove_reference_example(example_id):
        console.print(f"[red]Error:[/red] No example with id {example_id}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Removed example {example_id}")


@app.command("config")
def show_config(
    field: Optional[List[str]] = typer.Option(None, "--field", "-f", help="Replace saved fields"),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Replace saved prompt"),
    lang: Optional[str] = typer.Option(None, "--lang", help="Interface language code"),
):
    """Show or update the saved field configuration."""
    current = storage.load_user_config()
    if field or prompt is not None or lang:
        storage.save_user_config(
            normalize_fields(field) if field else current.fields,
            prompt if prompt is not None else current.custom_prompt,
            lang or current.lang,
        )
        current = storage.load_user_config()

    console.print(f"Fields: {', '.join(current.fields) or '(none)'}")
    console.print(f"Prompt: {current.custom_prompt or '(none)'}")
    console.print(f"Language: {current.lang}")
    console.print(f"API key saved: {'yes' if storage.load_api_key() else 'no'}")


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Clear fields, prompt, examples and the saved API key."""
    if not yes and not typer.confirm("Clear the whole workspace, including the saved API key?"):
        raise typer.Exit()
    storage.clear_workspace()
    console.print("[green]✓[/green] Workspace cleared")


if __name__ == "__main__":
    app()
