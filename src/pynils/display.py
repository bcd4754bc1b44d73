"""
Console rendering of estimation results.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from .estimation.nils import NilsResult


def _format(value: float | int | None, precision: int) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "-"
    if isinstance(value, float):
        return f"{value:,.{precision}f}"
    return f"{value:,}"


def display_result(
    result: NilsResult,
    title: str = "",
    precision: int = 2,
    console: Console | None = None,
) -> None:
    """
    Display a NILS result as a Rich table.

    Prints one row per category followed by the total estimate, its
    standard error, 95% confidence interval and the number of non-nil
    tracts.

    Parameters
    ----------
    result : NilsResult
        Result of ``nils`` or ``nils_balanced``.
    title : str, optional
        Title to display above the table.
    precision : int, optional
        Decimal places for floating point numbers. Defaults to 2.
    console : Console, optional
        Console to print to. A new one is created if omitted.

    Example
    -------
    >>> result = nils(psus, categories, tracts, plots, area=1e6)
    >>> display_result(result, title="Land cover")
    """
    console = console or Console()

    if title:
        console.print(f"\n[bold blue]{title}[/bold blue]")

    df = result.to_polars()
    table = Table(show_header=True, header_style="bold cyan")
    for col in df.columns:
        table.add_column(col, justify="left" if col == "CATEGORY" else "right")

    for row in df.iter_rows():
        table.add_row(
            *(str(val) if col == "CATEGORY" else _format(val, precision)
              for val, col in zip(row, df.columns))
        )

    console.print(table)
    lower, upper = result.confidence_interval()
    console.print(
        f"Total: {_format(result.estimate, precision)} "
        f"(SE: {_format(result.se, precision)}, "
        f"95% CI: {_format(lower, precision)} to {_format(upper, precision)}, "
        f"non-nil tracts: {result.nonnil_tracts:,})"
    )
