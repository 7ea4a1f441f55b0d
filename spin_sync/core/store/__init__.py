"""
Backends of the remote store in which session documents are kept.
"""

from pyrollup import rollup

from . import base, file, firebase, memory
from .base import *  # noqa
from .file import *  # noqa
from .firebase import *  # noqa
from .memory import *  # noqa

__all__ = rollup(
    base,
    memory,
    file,
    firebase,
)

__canonical_children__ = [
    "base",
    "memory",
    "file",
    "firebase",
]
