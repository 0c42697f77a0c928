"""Metadata merge policies.

Two distinct steps are involved in writing metadata back to the repository:

1. **Merging** the locally produced description into the stored one
   (`merge_metadata`). Properties present in the incoming description
   replace the stored ones; properties listed in `preserve` are unioned
   instead (identifiers are always preserved by callers so that a local
   description can never make an object forget an identifier).

2. **Patching**: turning the desired state into a set of triples to delete
   and a set to insert (`compute_patch`) according to an `UpdateMode`:

   - `ADD` inserts new triples and never deletes anything.
   - `UPDATE` deletes the triples of the previously fetched snapshot that
     are absent from the desired state, except for protected properties,
     and inserts the missing ones. Patching a snapshot with itself is a
     no-op.
   - `OVERWRITE` deletes every stored triple and inserts the whole desired
     state; applying it twice gives the same result as once.

   Server-managed (reserved) properties are never part of a patch.

Values are sets (see `reposchema.metadata.Metadata`), so no policy can
introduce duplicate values.
"""

from enum import Enum
from typing import Callable, Iterable

from pydantic import BaseModel, ConfigDict

from reposchema.metadata import Metadata


class UpdateMode(str, Enum):
    """How a desired metadata state is written over the stored one."""

    ADD = "add"
    UPDATE = "update"
    OVERWRITE = "overwrite"


class MetadataPatch(BaseModel):
    """Triples to delete and to insert, in that order."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    delete: Metadata
    insert: Metadata

    @property
    def is_empty(self) -> bool:
        return not self.delete and not self.insert


def _never_reserved(prop: str) -> bool:
    return False


def merge_metadata(current: Metadata, incoming: Metadata, preserve: Iterable[str] = ()) -> Metadata:
    """Combine stored metadata with a locally produced description.

    Args:
        current: Metadata as stored in the repository.
        incoming: Locally produced metadata.
        preserve: Properties whose stored values are kept alongside the
            incoming ones instead of being replaced.

    Returns:
        A new `Metadata`; neither argument is modified.
    """
    preserved = set(preserve)
    merged = current.copy()
    for prop in incoming.properties():
        if prop not in preserved:
            merged.delete(prop)
        for value in incoming.values(prop):
            merged.add(prop, value)
    return merged


def compute_patch(
    snapshot: Metadata,
    incoming: Metadata,
    mode: UpdateMode | str,
    protected: Iterable[str] = (),
    is_reserved: Callable[[str], bool] = _never_reserved,
) -> MetadataPatch:
    """Compute the delete/insert sets turning `snapshot` into `incoming`.

    Raises:
        ValueError: if `mode` is not an `UpdateMode`. A write that can not be
            attributed to a policy is a programming error.
    """
    mode = UpdateMode(mode)
    protected_props = set(protected)
    writable = incoming.filter(lambda p, v: not is_reserved(p))

    if mode is UpdateMode.ADD:
        delete = Metadata()
        insert = writable.difference(snapshot)
    elif mode is UpdateMode.UPDATE:
        delete = snapshot.difference(incoming).filter(lambda p, v: p not in protected_props and not is_reserved(p))
        insert = writable.difference(snapshot)
    else:
        delete = snapshot.filter(lambda p, v: not is_reserved(p))
        insert = writable
    return MetadataPatch(delete=delete, insert=insert)


def apply_patch(snapshot: Metadata, patch: MetadataPatch) -> Metadata:
    """Return `snapshot` with `patch` applied (deletes first)."""
    result = snapshot.copy()
    for prop, value in patch.delete.triples():
        result.delete(prop, value)
    result.update(patch.insert)
    return result
