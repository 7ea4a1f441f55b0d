"""
Resolution of the session key a client joins.
"""
from __future__ import annotations

import logging
from logging import Logger
from pathlib import Path

import yaml
from pydantic import ValidationError

from .yaml_model import BaseYamlModel

__all__ = [
    "DEFAULT_SESSION_KEY",
    "DEFAULT_STATE_FILE",
    "LocalState",
    "SessionIdentityResolver",
]

DEFAULT_SESSION_KEY = "jjk-default-group"
"""
Well-known key joined when no session is requested, so unrelated users land
in the same shared session.
"""

DEFAULT_STATE_FILE = Path.home() / ".spin-sync" / "state.yaml"
"""
Location of state persisted for this device.
"""


class LocalState(BaseYamlModel):
    """
    State persisted for this device. Only the session key is kept; the
    session itself is always re-derived from the remote store.
    """

    session_key: str | None = None


class SessionIdentityResolver:
    """
    Derives the session key from an optional external parameter.

    In order of precedence:

    - The parameter, if provided; it gets persisted so a later run without
    the parameter rejoins the same session on this device
    - The key previously persisted on this device
    - {obj}`DEFAULT_SESSION_KEY`

    Resolution never fails. The key is resolved once and is immutable for
    the life of the resolver.
    """

    _param: str | None
    _state_file: Path | None
    _default_key: str
    _key: str | None = None
    _logger: Logger

    def __init__(
        self,
        param: str | None = None,
        *,
        state_file: Path | None = None,
        default_key: str = DEFAULT_SESSION_KEY,
        logger: Logger | None = None,
    ):
        """
        :param param: External session parameter, e.g. from CLI option
        :param state_file: File to persist the key to, or `None` to disable persistence
        :param default_key: Key to fall back to
        :param logger: Logger to use, or `None` to use default logger
        """
        self._param = param.strip() if param and param.strip() else None
        self._state_file = state_file
        self._default_key = default_key
        self._logger = logger or logging.getLogger()

    def resolve(self) -> str:
        """
        Get the session key, resolving it upon first invocation.
        """
        if self._key is None:
            self._key = self._resolve()
            self._logger.debug(f"Resolved session key '{self._key}'")

        return self._key

    def _resolve(self) -> str:
        if self._param is not None:
            self._persist(self._param)
            return self._param

        stored = self._load()
        if stored is not None:
            return stored

        return self._default_key

    def _load(self) -> str | None:
        if self._state_file is None or not self._state_file.is_file():
            return None

        try:
            state = LocalState.load_yaml(self._state_file)
        except (OSError, ValueError, ValidationError, yaml.YAMLError) as e:
            self._logger.warning(
                f"Ignoring unreadable state file '{self._state_file}': {e}"
            )
            return None

        return state.session_key or None

    def _persist(self, key: str):
        if self._state_file is None:
            return

        try:
            LocalState(session_key=key).dump_yaml(self._state_file)
        except OSError as e:
            self._logger.warning(
                f"Failed to persist session key to '{self._state_file}': {e}"
            )
