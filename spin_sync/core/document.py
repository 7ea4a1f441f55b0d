"""
Models of the session document as synchronized with the remote store.
"""
from __future__ import annotations

from typing import Any, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .exceptions import InvalidDocument

__all__ = [
    "Selection",
    "SessionDocument",
]


class Selection(BaseModel):
    """
    Most recently drawn identifier along with its display payload.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    identifier: str
    display_image: str


class SessionDocument(BaseModel):
    """
    Full state of a session. Always written as a whole; there are no
    partial-field updates.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    initialized: bool = False
    """
    Set when the session was created; never reverts to `False`.
    """

    roster: list[str] = Field(default_factory=list)
    """
    Identifiers on the wheel, in display order.
    """

    drawn_set: list[str] = Field(default_factory=list)
    """
    Identifiers drawn so far, most recent first.
    """

    current_selection: Selection | None = None
    """
    Most recent draw, or `None` after a reset or undo.
    """

    revision: int = 0
    """
    Per-writer counter of writes. Informational only; writes are never
    conditional on it.
    """

    writer: str | None = None
    """
    Id of the client which wrote this document.
    """

    @classmethod
    def fresh(
        cls,
        roster: list[str],
        *,
        writer: str | None = None,
        revision: int = 0,
    ) -> SessionDocument:
        """
        Create an initialized document with nothing drawn.
        """
        return cls(
            initialized=True,
            roster=list(roster),
            drawn_set=[],
            current_selection=None,
            revision=revision,
            writer=writer,
        )

    @classmethod
    def from_remote(cls, payload: Any) -> SessionDocument:
        """
        Interpret a payload received from a store.

        :raises InvalidDocument: If the payload isn't a mapping or has fields of the wrong type
        """
        if not isinstance(payload, dict):
            raise InvalidDocument(
                [f"expected a mapping, got {type(payload).__name__}"]
            )

        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise InvalidDocument(
                [
                    f"{'.'.join(str(l) for l in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                ]
            )

    def to_remote(self) -> dict[str, Any]:
        """
        Get the payload to write to a store.
        """
        return self.model_dump(by_alias=True, mode="json")

    @field_validator("roster", "drawn_set", mode="before")
    @classmethod
    def validate_list(cls, value: Any) -> Any:
        # stores may drop empty lists entirely
        if value is None:
            return []

        # stores may return lists as mappings of index to value
        if isinstance(value, dict) and all(
            str(k).isdigit() for k in value.keys()
        ):
            return [value[k] for k in sorted(value.keys(), key=int)]

        return value

    @model_validator(mode="after")
    def validate_membership(self) -> Self:
        roster = list(dict.fromkeys(self.roster))
        members = set(roster)

        # drawn identifiers must be unique members of the roster
        drawn_set = [
            i for i in dict.fromkeys(self.drawn_set) if i in members
        ]

        if roster != self.roster:
            self.roster = roster
        if drawn_set != self.drawn_set:
            self.drawn_set = drawn_set

        return self
