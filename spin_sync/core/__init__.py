"""
This module implements the shared elimination session: its document model,
the synchronizer keeping it consistent across clients, and the stores in
which it's kept.
"""

from pyrollup import rollup

from . import document, exceptions, identity, policy, store, synchronizer
from .document import *  # noqa
from .exceptions import *  # noqa
from .identity import *  # noqa
from .policy import *  # noqa
from .store import *  # noqa
from .synchronizer import *  # noqa

__all__ = rollup(
    synchronizer,
    document,
    policy,
    identity,
    store,
    exceptions,
)

__canonical_children__ = [
    "synchronizer",
    "document",
    "policy",
    "identity",
    "store",
    "exceptions",
]
