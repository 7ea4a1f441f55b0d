"""
Library of predefined session content.
"""

from pyrollup import rollup

from . import roster
from .roster import *  # noqa

__all__ = rollup(
    roster,
)

__canonical_children__ = [
    "roster",
]
