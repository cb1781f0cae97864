from __future__ import annotations

from enum import Enum
from typing import Mapping, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

StatusT = TypeVar("StatusT", bound=Enum)


class CamelModel(BaseModel):
    """Base model whose wire format uses camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class InvalidStatusTransitionError(ValueError):
    """Raised when a record is asked to move to a status it cannot reach."""

    def __init__(self, entity: str, current: Enum | None, requested: Enum) -> None:
        self.entity = entity
        self.current = current
        self.requested = requested
        current_label = current.value if current is not None else "absent"
        super().__init__(
            f"Illegal {entity} status transition: {current_label} -> {requested.value}"
        )


def ensure_transition(
    entity: str,
    table: Mapping[StatusT | None, frozenset[StatusT]],
    current: StatusT | None,
    requested: StatusT,
) -> None:
    """Validate ``current -> requested`` against an exhaustive transition table."""

    if requested not in table.get(current, frozenset()):
        raise InvalidStatusTransitionError(entity, current, requested)
