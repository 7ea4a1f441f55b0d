"""
Interface to configuration as persisted in .yaml file.
"""
from __future__ import annotations

from logging import Logger
from pathlib import Path
from typing import Any, Self
from urllib.parse import urlparse

from pydantic import BaseModel, field_validator, model_validator

from ..core import FileStore, FirebaseStore, MemoryStore, STARTUP_TIMEOUT
from ..core.store.base import BaseStore
from ..core.yaml_model import BaseYamlModel

__all__ = [
    "Config",
    "InstanceConfig",
]

MEMORY_URL = "memory://"
"""
URL of a store kept in memory of the current process.
"""


class Config(BaseYamlModel):
    """
    Encapsulates configuration for use in tools.
    """

    root_data_dir: Path | None = None
    """
    Root folder for per-instance session folders of file stores.
    """

    instances: dict[str, InstanceConfig]
    """
    Mapping of instance names to configs.
    """

    @field_validator("root_data_dir", mode="before")
    def validate_root_data_dir(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Path(value)
        return value

    @model_validator(mode="after")
    def validate_instances(self) -> Self:
        # instances with no url keep their sessions in the root data dir
        if self.root_data_dir:
            for instance_name, instance in self.instances.items():
                if not instance.url:
                    instance.url = str(self.root_data_dir / instance_name)
        return self


class InstanceConfig(BaseModel):
    """
    Encapsulates info for a store instance.
    """

    url: str | None = None
    """
    One of:

    - `memory://`
    - `file:///path/to/folder` or a folder path
    - `http://` or `https://` URL of a Firebase Realtime Database
    """

    token: str | None = None
    timeout: float = STARTUP_TIMEOUT

    @field_validator("url")
    def validate_url(cls, value: str | None) -> str | None:
        if value is None:
            return value

        scheme = urlparse(value).scheme
        if scheme not in ("", "memory", "file", "http", "https"):
            raise ValueError(f"unsupported store url scheme: '{scheme}'")
        return value

    @field_validator("timeout")
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be positive")
        return value

    def create_store(self, *, logger: Logger | None = None) -> BaseStore:
        """
        Get store from this instance's fields.
        """
        if not self.url:
            raise ValueError("no store url configured")

        parsed = urlparse(self.url)

        if parsed.scheme == "memory":
            return MemoryStore(logger=logger)
        if parsed.scheme in ("http", "https"):
            return FirebaseStore(self.url, self.token, logger=logger)

        path = Path(parsed.path) if parsed.scheme == "file" else Path(self.url)
        return FileStore(path, logger=logger)
