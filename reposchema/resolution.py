"""Outcome of resolving a set of identifiers against the repository.

Resolution is an expected branch point (create when nothing matches, update
when exactly one object does), so it is expressed as a value rather than an
exception:

    match await session.resolve_identifiers(ids):
        case Found(obj=obj):
            ...
        case NotFound():
            ...
        case Ambiguous(candidates=objs):
            ...
"""

from typing import Union

from pydantic import BaseModel

from reposchema.objects import RepositoryObject


class Found(BaseModel):
    model_config = {"frozen": True}

    obj: RepositoryObject


class NotFound(BaseModel):
    model_config = {"frozen": True}

    identifiers: tuple[str, ...] = ()


class Ambiguous(BaseModel):
    """More than one distinct object matched after re-verification."""

    model_config = {"frozen": True}

    identifiers: tuple[str, ...] = ()
    candidates: tuple[RepositoryObject, ...] = ()


Resolution = Union[Found, NotFound, Ambiguous]
