"""Copy-on-write version rotation.

When the content behind an object changes and versioning is enabled, the
object is not overwritten. Instead:

- a new object is created from the old metadata (without identifiers,
  digest, version links and, unless `pid_pass`, persistent identifiers)
  merged with the
  fresh description of the source;
- every identifier of the old object that is neither canonical nor a
  persistent identifier kept back moves to the new object, so lookups by
  external identifier find the new version from now on;
- the old object loses its parent link and gets a fresh id in
  `RepositoryConfig.vid_namespace` (an object always keeps at least one
  non-canonical identifier);
- the two objects reference each other (`new_version_prop` on the new one,
  `prev_version_prop` on the old one).

The rotation runs under `session.atomic()` so an autocommit can never
separate the two halves.
"""

import uuid

from reposchema.metadata import Metadata
from reposchema.objects import RepositoryObject, VersionLink
from reposync.identity import canonical_id
from reposync.logging import setup_logging
from reposync.merge import UpdateMode, merge_metadata
from reposync.session import RepositorySession
from reposync.sources import ObjectSource

logger = setup_logging()


async def create_new_version(
    session: RepositorySession,
    old: RepositoryObject,
    source: ObjectSource,
    upload: bool = True,
    pid_pass: bool = False,
    path: str | None = None,
) -> VersionLink:
    """Rotate `old` into a superseded version and create its successor.

    Args:
        session: Session with an open transaction.
        old: Current object, as stored.
        source: Producer of the new version's metadata and content.
        upload: Upload the source's binary content to the new object.
        pid_pass: Move persistent identifiers to the new object instead of
            keeping them on the old one.
        path: Repository location for the new object.

    Returns:
        The updated old object and the new object.
    """
    cfg = session.config
    old_id = canonical_id(old, cfg)

    async with session.atomic():
        old_meta = old.metadata.filter(lambda p, v: not cfg.is_reserved(p))
        skip = [cfg.id_prop, cfg.hash_prop, cfg.new_version_prop, cfg.prev_version_prop]
        if not pid_pass:
            skip.append(cfg.pid_prop)
        new_meta = merge_metadata(old_meta.copy(skip=skip), source.get_metadata(), preserve=[cfg.id_prop])
        new_meta.add_reference(cfg.new_version_prop, old_id)

        kept_pids: set[str] = set()
        if pid_pass:
            old_meta.delete(cfg.pid_prop)
        else:
            kept_pids = {str(v) for v in old_meta.values(cfg.pid_prop)}
        for identifier in old_meta.identifiers(cfg.id_prop):
            if identifier in kept_pids or cfg.is_canonical_id(identifier):
                continue
            new_meta.add_reference(cfg.id_prop, identifier)
            old_meta.delete(cfg.id_prop, identifier)
        old_meta.delete(cfg.parent_prop)
        old_meta.add_reference(cfg.id_prop, f"{cfg.vid_namespace}{uuid.uuid4()}")

        old = await session.update_metadata(old, old_meta, UpdateMode.OVERWRITE, protected=())

        content = source.get_binary_data() if upload else None
        new = await session.create_object(new_meta, content, path)

        link = Metadata()
        link.add_reference(cfg.prev_version_prop, canonical_id(new, cfg))
        old = await session.update_metadata(old, link, UpdateMode.ADD)

    logger.info({"message": "new version created", "old": old.uri, "new": new.uri, "replaces": old_id}, pprint=True)
    return VersionLink(old=old, new=new)
