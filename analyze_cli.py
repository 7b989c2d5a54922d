"""
# Copyright (C) 2025 Qleric
# Licensed under AGPL-3.0 - see LICENSE file

Command-line entry point for running the contract analysis pipeline on a
local PDF. The file is placed in the blob cache under a fresh key, exactly
as an upload would be, and the pipeline reads it back from there.
"""

import uuid
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from contract_analyzer import ExtractionError, Tier, create_pipeline

app = typer.Typer(
    name="contract-analyzer",
    help="AI contract analysis with free and premium tiers",
    add_completion=False,
)
console = Console()


def _stage_upload(pipeline, pdf_path: Path) -> str:
    """Put the PDF into the pipeline's blob cache and return its key."""
    blob_key = f"upload:{uuid.uuid4().hex}:{pdf_path.name}"
    pipeline.extractor.blob_cache.put(blob_key, pdf_path.read_bytes())
    return blob_key


@app.command("detect-type")
def detect_type(
    pdf_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Contract PDF"),
):
    """Detect the type of a contract."""
    pipeline = create_pipeline()

    try:
        blob_key = _stage_upload(pipeline, pdf_path)
        contract_type = pipeline.detect_contract_type(blob_key)
    except ExtractionError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]✗[/red] Contract type detection failed: {escape(str(e))}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Detected contract type: [cyan]{escape(contract_type)}[/cyan]")


@app.command()
def analyze(
    pdf_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Contract PDF"),
    tier: str = typer.Option(
        Tier.FREE.value,
        "--tier",
        "-t",
        help="Analysis tier: free or premium",
    ),
    contract_type: Optional[str] = typer.Option(
        None,
        "--type",
        help="Contract type (detected automatically when omitted)",
    ),
):
    """Analyze a contract and print the JSON report."""
    pipeline = create_pipeline()

    try:
        blob_key = _stage_upload(pipeline, pdf_path)
        report = pipeline.analyze(blob_key, tier=tier, contract_type=contract_type)
    except ExtractionError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]✗[/red] Analysis failed: {escape(str(e))}")
        raise typer.Exit(1)

    console.print_json(data=report)


if __name__ == "__main__":
    app()
