"""
Entry point of `spin-sync` CLI.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import dotenv
from click.exceptions import BadParameter, MissingParameter
from pydantic import ValidationError
from typer import Context, Exit, Option

from ...core import (
    DEFAULT_STATE_FILE,
    RemoteUnavailable,
    SessionIdentityResolver,
)
from ...core.store.base import BaseStore
from ..config import Config, InstanceConfig
from . import session
from ._utils import MainTyper, get_root_context, logger, lookup_param

dotenv.load_dotenv()

app = MainTyper(
    "spin-sync",
    help="Shared elimination wheel CLI",
)


@app.callback()
def main(
    ctx: Context,
    url: str
    | None = Option(
        None,
        help="Store URL: memory://, a folder path or file:// URL, or a Firebase database http(s):// URL",
        envvar="SPIN_SYNC_URL",
    ),
    token: str
    | None = Option(
        None,
        help="Firebase auth token",
        envvar="SPIN_SYNC_TOKEN",
    ),
    instance_name: str
    | None = Option(
        None,
        "--instance",
        help="Instance name as configured in .yaml",
        envvar="SPIN_SYNC_INSTANCE",
    ),
    config_file: Path = Option(
        "spin-sync.yaml",
        help=".yaml file containing instance info, only applicable with --instance",
        envvar="SPIN_SYNC_CONFIG_FILE",
        dir_okay=False,
    ),
    session_param: str
    | None = Option(
        None,
        "--session",
        help="Session to join; remembered on this device for later runs",
        envvar="SPIN_SYNC_SESSION",
    ),
    state_file: Path = Option(
        DEFAULT_STATE_FILE,
        help="File in which the joined session is remembered",
        envvar="SPIN_SYNC_STATE_FILE",
        dir_okay=False,
    ),
    timeout: float
    | None = Option(
        None,
        help="Seconds to wait for the store before continuing locally",
    ),
    verbose: bool = Option(False, "--verbose", "-v", help="Log debug output"),
):
    if verbose:
        logger.setLevel(logging.DEBUG)

    if instance_name:
        root_context = RootContext.from_config(
            ctx=ctx,
            instance_name=instance_name,
            config_file=config_file,
            session_param=session_param,
            state_file=state_file,
        )
    else:
        if not url:
            raise MissingParameter(
                message="either --url or --instance must be provided",
                ctx=ctx,
                param_hint=["url", "instance"],
                param_type="option",
            )

        try:
            instance = InstanceConfig(url=url, token=token)
        except ValidationError as e:
            raise BadParameter(
                f"invalid store url '{url}': {e}",
                ctx=ctx,
                param=lookup_param(ctx, "url"),
            )

        root_context = RootContext(
            ctx=ctx,
            instance=instance,
            from_file=False,
            session_param=session_param,
            state_file=state_file,
        )

    if timeout is not None:
        if timeout <= 0:
            raise BadParameter(
                "timeout must be positive",
                ctx=ctx,
                param=lookup_param(ctx, "timeout"),
            )
        root_context.instance.timeout = timeout

    ctx.obj = root_context


app.add_typer(session.app)


@app.command()
def check(ctx: Context):
    """
    Check connection to the store
    """
    root_context = get_root_context(ctx)
    store = root_context.create_store()
    key = root_context.session_key

    async def read():
        try:
            return await store.read(key)
        finally:
            await store.close()

    try:
        payload = asyncio.run(read())
    except RemoteUnavailable as e:
        logger.error(f"Failed to read session '{key}': {e}")
        raise Exit(code=1)

    if payload is None:
        logger.info(f"Connected to {store}, session '{key}' does not exist")
    else:
        logger.info(f"Connected to {store}, session '{key}' exists")


def run():
    app()


@dataclass(kw_only=True)
class RootContext:
    ctx: Context
    instance: InstanceConfig
    from_file: bool
    session_param: str | None
    state_file: Path

    _session_key: str | None = None

    @classmethod
    def from_config(
        cls,
        *,
        ctx: Context,
        instance_name: str,
        config_file: Path,
        session_param: str | None,
        state_file: Path,
    ) -> RootContext:
        # ensure config file exists
        if not config_file.is_file():
            raise BadParameter(
                message=f"file does not exist: {config_file}",
                ctx=ctx,
                param=lookup_param(ctx, "config_file"),
            )

        # get config from file
        try:
            config = Config.load_yaml(config_file)
        except (ValueError, ValidationError) as e:
            raise BadParameter(
                f"failed to load config file '{config_file}': {e}",
                ctx=ctx,
                param=lookup_param(ctx, "config_file"),
            )

        # get instance from config
        instance = config.instances.get(instance_name)
        if not instance:
            raise BadParameter(
                f"instance '{instance_name}' not found in '{config_file}'",
                ctx=ctx,
                param=lookup_param(ctx, "instance_name"),
            )

        return RootContext(
            ctx=ctx,
            instance=instance,
            from_file=True,
            session_param=session_param,
            state_file=state_file,
        )

    @property
    def session_key(self) -> str:
        """
        Session key, resolved upon first access.
        """
        if self._session_key is None:
            self._session_key = SessionIdentityResolver(
                self.session_param,
                state_file=self.state_file,
                logger=logger,
            ).resolve()
        return self._session_key

    def create_store(self) -> BaseStore:
        try:
            return self.instance.create_store(logger=logger)
        except ValueError as e:
            logger.error(f"Failed to create store: {e}")
            raise Exit(code=1)


if __name__ == "__main__":
    app()
