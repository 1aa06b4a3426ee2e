"""
Entity base model: a SQLModel record identified by a UUID.

Every mapped subclass gets an immutable ``id``: reassigning it on an instance
that already has one raises :class:`ValidationError`.
"""

import uuid
from sqlalchemy import event
from sqlalchemy.orm import Mapper
from sqlmodel import SQLModel, Field
from datakit.exceptions.errors import ValidationError


class Entity(SQLModel):
    """Base for table models; subclasses declare ``table=True`` and their own fields."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


def _reject_identifier_change(target, value, oldvalue, initiator):
    if isinstance(oldvalue, uuid.UUID) and value != oldvalue:
        raise ValidationError(
            f"{type(target).__name__}.id is immutable ({oldvalue} -> {value})"
        )


@event.listens_for(Mapper, "mapper_configured")
def _guard_identifier(mapper, cls):
    if issubclass(cls, Entity) and not event.contains(cls.id, "set", _reject_identifier_change):
        event.listen(cls.id, "set", _reject_identifier_change)
