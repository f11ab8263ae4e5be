"""Run one stock analysis from the command line and print the report."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from analyst.config import get_settings
from analyst.errors import AnalysisError
from analyst.services.analysis import analyze_stock
from analyst.services.market_data import normalize_ticker
from analyst.services.prompts import TRUNCATION_NOTICE

app = typer.Typer(add_completion=False)


@app.command()
def main(
    ticker: Annotated[str, typer.Argument(help="Ticker symbol to analyze, e.g. AAPL")],
    budget: Annotated[
        Optional[float],  # noqa: UP007
        typer.Option("--budget", "-b", help="Budget available for the trade"),
    ] = None,
) -> None:
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    try:
        symbol = normalize_ticker(ticker)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc

    try:
        result = asyncio.run(analyze_stock(settings, symbol, budget=budget))
    except AnalysisError as exc:
        typer.echo(f"Analysis failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(result.text + TRUNCATION_NOTICE if result.truncated else result.text)
    typer.echo(f"\n[{result.model}, {result.turns} turn(s)]", err=True)


if __name__ == "__main__":
    app()
