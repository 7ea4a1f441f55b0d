"""
Commands operating on the joined session.
"""
from __future__ import annotations

import asyncio

import typer
from click import Abort
from typer import Context, Option

from ...core import Projection, Synchronizer
from ._utils import (
    MainTyper,
    console,
    get_root_context,
    logger,
    open_session,
    print_projection,
)

PLAY_PROMPT = "[d]raw, [u]ndo, [r]eset, dismiss [x], [s]how, [q]uit"

app = MainTyper(
    "session",
    help="Operations on the shared session",
)


@app.command()
def show(ctx: Context):
    """
    Show the wheel and the current selection
    """

    async def run():
        async with open_session(get_root_context(ctx)) as sync:
            print_projection(sync.projection)

    asyncio.run(run())


@app.command()
def draw(ctx: Context):
    """
    Draw the next identifier
    """

    async def run():
        async with open_session(get_root_context(ctx)) as sync:
            _draw(sync)

    asyncio.run(run())


@app.command()
def reset(
    ctx: Context,
    yes: bool = Option(False, "--yes", "-y", help="Don't prompt to confirm"),
):
    """
    Reset the wheel for every client in the session
    """
    if not yes:
        if not typer.confirm("Reset the wheel for everyone in the session?"):
            return

    async def run():
        async with open_session(get_root_context(ctx)) as sync:
            sync.reset()
            logger.info(f"Reset session '{sync.key}'")

    asyncio.run(run())


@app.command()
def watch(
    ctx: Context,
    duration: float
    | None = Option(
        None, help="Seconds to watch for, or until interrupted if not set"
    ),
):
    """
    Log changes made by any client until interrupted
    """

    async def run():
        async with open_session(get_root_context(ctx)) as sync:
            print_projection(sync.projection)
            sync.add_listener(_ChangeLogger(sync.projection))

            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


@app.command()
def play(ctx: Context):
    """
    Interactively draw, undo and reset while following other clients
    """

    async def run():
        loop = asyncio.get_running_loop()

        async with open_session(get_root_context(ctx)) as sync:
            print_projection(sync.projection)
            sync.add_listener(_ChangeLogger(sync.projection))

            while True:
                try:
                    choice = await loop.run_in_executor(
                        None, typer.prompt, PLAY_PROMPT
                    )
                except Abort:
                    break

                choice = choice.strip().lower()[:1]

                if choice == "q":
                    break
                elif choice == "d":
                    _draw(sync)
                elif choice == "u":
                    if sync.undo():
                        logger.info("Reverted last draw")
                    else:
                        logger.info("Nothing to undo")
                elif choice == "r":
                    sync.reset()
                    logger.info(f"Reset session '{sync.key}'")
                elif choice == "x":
                    sync.dismiss_selection()
                elif choice == "s":
                    print_projection(sync.projection)
                else:
                    console.print(f"Unknown choice; {PLAY_PROMPT}")

    asyncio.run(run())


def _draw(sync: Synchronizer):
    result = sync.draw()

    if result is None:
        logger.info("Nothing left to draw, reset the wheel to start again")
        return

    remaining = len(sync.projection.remaining)
    logger.info(
        f"Drew '{result.identifier}' at segment {result.wheel_index}, {remaining} remaining"
    )
    console.print(f"This time you draw: [bold]{result.identifier}[/bold]")


class _ChangeLogger:
    """
    Logs changes to the drawn set, whichever client made them.
    """

    def __init__(self, projection: Projection):
        self.drawn_set = projection.drawn_set

    def __call__(self, projection: Projection):
        if projection.drawn_set == self.drawn_set:
            return

        previous, self.drawn_set = self.drawn_set, projection.drawn_set

        if not projection.drawn_set:
            logger.info("Wheel was reset")
        elif projection.drawn_set[1:] == previous:
            logger.info(f"Drawn: '{projection.drawn_set[0]}'")
        else:
            logger.info(
                f"Session changed: {len(projection.drawn_set)} of {len(projection.roster)} drawn"
            )
