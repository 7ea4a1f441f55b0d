"""
Utilities specific to CLI functionality.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, AsyncIterator

from click import Parameter
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from typer import Context, Typer

from ...core import Projection, Synchronizer

if TYPE_CHECKING:
    from .main import RootContext


console = Console()

rich_handler = RichHandler(
    console=console,
    rich_tracebacks=True,
    show_level=True,
    show_time=True,
    show_path=False,
)
rich_handler.setFormatter(logging.Formatter("%(message)s"))

logger = logging.getLogger("spin-sync")
logger.setLevel(logging.INFO)
logger.addHandler(rich_handler)
logger.propagate = False


class MainTyper(Typer):
    """
    Typer app with preconfigured settings.
    """

    def __init__(self, name: str, *, help: str):
        return super().__init__(
            name=name,
            help=help,
            rich_markup_mode="markdown",
            no_args_is_help=True,
            add_completion=False,
        )


def get_root_context(ctx: Context) -> RootContext:
    from .main import RootContext

    root_context = ctx.obj
    assert isinstance(root_context, RootContext)
    return root_context


@contextlib.asynccontextmanager
async def open_session(
    root_context: RootContext,
) -> AsyncIterator[Synchronizer]:
    """
    Join the session and leave it upon exit, waiting for pending writes.
    """
    store = root_context.create_store()

    try:
        async with Synchronizer(
            store,
            root_context.session_key,
            timeout=root_context.instance.timeout,
            logger=logger,
        ) as sync:
            yield sync
    finally:
        await store.close()


def print_projection(projection: Projection):
    """
    Print the wheel and the current selection.
    """
    drawn_order = {
        identifier: len(projection.drawn_set) - i
        for i, identifier in enumerate(projection.drawn_set)
    }

    table = Table(
        title=f"Drawn {len(projection.drawn_set)} of {len(projection.roster)}"
    )
    table.add_column("Segment", justify="right")
    table.add_column("Identifier")
    table.add_column("Drawn", justify="right")

    for index, identifier in enumerate(projection.roster):
        order = drawn_order.get(identifier)
        table.add_row(
            str(index),
            f"[strike]{identifier}[/strike]" if order else identifier,
            str(order) if order else "",
        )

    console.print(table)

    if projection.current_selection:
        console.print(
            f"This time you draw: [bold]{projection.current_selection.identifier}[/bold]"
        )
    elif not projection.remaining:
        console.print("All done! Reset the wheel to start again.")
    else:
        console.print("No selection yet. Spin the wheel!")


def lookup_param(ctx: Context, name: str) -> Parameter:
    """
    Lookup param by name.
    """
    param = next((p for p in ctx.command.params if p.name == name), None)
    assert param, f"Could not find param with name: {name}"
    return param
