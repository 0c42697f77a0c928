"""Filesystem synchronization with content-based versioning.

`VersionedIndexer` walks one or more directories below a container
directory and maps every entry onto a repository object under a parent:

- a file or directory without a matching object is created (files with
  their content, unless larger than `upload_size_limit`);
- an existing object is updated in place, or, when versioning is enabled
  and the file content changed, rotated into a new version (see
  `reposync.versioning`).

Objects are matched by identifier; a file's identifier is derived from its
path relative to the container directory (`FileSource.get_id`), so repeated
runs over the same tree touch the same objects.

In hierarchical mode every directory becomes a collection object and its
entries are attached to it. In flat mode directories produce no objects and
every file is attached directly to the indexer's parent.

The walk is iterative over an explicit stack of
(directory, parent id, remaining depth) entries. `session.maybe_autocommit()`
runs after every indexed entry.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from reposchema import resolution
from reposchema.objects import RepositoryObject
from reposync.exceptions import AmbiguousMatch, MetadataMissing
from reposync.identity import canonical_id
from reposync.logging import setup_logging
from reposync.lookup import MetadataLookupInterface
from reposync.merge import UpdateMode, merge_metadata
from reposync.session import RepositorySession
from reposync.sources import FileSource
from reposync.versioning import create_new_version


class VersioningMode(str, Enum):
    """How an existing file object decides whether its content changed."""

    NONE = "none"
    ALWAYS = "always"
    DIGEST = "digest"
    DATE = "date"


class IndexerSettings(BaseModel):
    """Indexer configuration.

    Attributes:
        container_dir: Filesystem root all indexed paths are relative to.
        uri_prefix: Prefix of the identifiers derived from relative paths.
        paths: Directories to index, relative to `container_dir`.
        include: Regex file names must match (directories are not filtered).
        exclude: Regex of file names to skip.
        flat: Attach every file directly to the parent.
        depth: Subdirectory levels to descend (0 = only the given paths).
        upload_size_limit: Files above this size get metadata-only objects;
            -1 uploads everything, 0 nothing.
        include_empty_dirs: Create collection objects for empty directories.
        update_only: Skip files which have no object yet.
        versioning: Change detection used for existing file objects.
        pid_pass: Move persistent identifiers to new versions.
        collection_class: RDF class of directory objects.
        binary_class: RDF class of file objects.
        repo_location: Repository path new objects are created under.
        require_metadata: Skip entries the lookup has no metadata for.
    """

    model_config = {"frozen": True}

    container_dir: Path
    uri_prefix: str = Field(description="Identifier prefix for relative file paths.")
    paths: tuple[str, ...] = ()
    include: str | None = None
    exclude: str | None = None
    flat: bool = False
    depth: int = Field(default=1000, ge=0)
    upload_size_limit: int = Field(default=-1, ge=-1)
    include_empty_dirs: bool = False
    update_only: bool = False
    versioning: VersioningMode = VersioningMode.NONE
    pid_pass: bool = False
    collection_class: str | None = None
    binary_class: str | None = None
    repo_location: str | None = None
    require_metadata: bool = False


class IndexResult(BaseModel):
    """Outcome of an indexer run.

    Attributes:
        indexed: URIs of every object created, updated or versioned.
        created: URIs of newly created objects.
        updated: URIs of objects updated in place.
        versioned: URIs of new versions created for changed files.
        skipped: Container-relative paths of skipped entries.
    """

    model_config = {"frozen": True}

    indexed: tuple[str, ...] = ()
    created: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    versioned: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()


class VersionedIndexer:
    """Creates, updates and versions repository objects for a directory tree."""

    def __init__(
        self,
        session: RepositorySession,
        parent: RepositoryObject | None,
        settings: IndexerSettings,
        meta_lookup: MetadataLookupInterface | None = None,
    ) -> None:
        self.session = session
        self.config = session.config
        self.parent = parent
        self.settings = settings
        self.meta_lookup = meta_lookup
        self.logger = setup_logging()
        self._include = re.compile(settings.include) if settings.include else None
        self._exclude = re.compile(settings.exclude) if settings.exclude else None
        self._reset()

    @classmethod
    def from_parent(
        cls,
        session: RepositorySession,
        parent: RepositoryObject,
        settings: IndexerSettings,
        meta_lookup: MetadataLookupInterface | None = None,
    ) -> "VersionedIndexer":
        """Index the directories named by the parent's location literals."""
        paths = [
            str(loc)
            for loc in parent.metadata.literals(session.config.location_prop)
            if (settings.container_dir / str(loc)).is_dir()
        ]
        return cls(session, parent, settings.model_copy(update={"paths": tuple(paths)}), meta_lookup)

    def _reset(self) -> None:
        self._created: list[str] = []
        self._updated: list[str] = []
        self._versioned: list[str] = []
        self._skipped: list[str] = []

    async def index(self) -> IndexResult:
        """Walk every configured path and synchronize its entries.

        Raises:
            ValueError: if no paths are configured.
        """
        if not self.settings.paths:
            raise ValueError("no paths to index")
        self._reset()
        root_parent = canonical_id(self.parent, self.config) if self.parent is not None else None
        stack = [(self.settings.container_dir / p, root_parent, self.settings.depth) for p in reversed(self.settings.paths)]
        while stack:
            directory, parent_id, depth = stack.pop()
            subdirs = []
            for entry in sorted(directory.iterdir()):
                obj, skipped = await self._index_entry(entry, parent_id, depth)
                if entry.is_dir() and depth > 0 and (not skipped or self.settings.flat):
                    child_parent = parent_id if self.settings.flat or obj is None else canonical_id(obj, self.config)
                    subdirs.append((entry, child_parent, depth - 1))
            stack.extend(reversed(subdirs))

        indexed = tuple(dict.fromkeys([*self._created, *self._updated, *self._versioned]))
        result = IndexResult(
            indexed=indexed,
            created=tuple(self._created),
            updated=tuple(self._updated),
            versioned=tuple(self._versioned),
            skipped=tuple(self._skipped),
        )
        self.logger.info(
            {"message": "indexing finished", "created": len(result.created), "updated": len(result.updated), "versioned": len(result.versioned), "skipped": len(result.skipped)},
            pprint=True,
        )
        return result

    def _is_skipped(self, entry: Path, depth: int) -> bool:
        if entry.is_dir():
            if self.settings.flat:
                return True
            is_empty = not any(entry.iterdir())
            return not self.settings.include_empty_dirs and (depth == 0 or is_empty)
        if self._include is not None and not self._include.search(entry.name):
            return True
        return self._exclude is not None and self._exclude.search(entry.name) is not None

    def _uploads(self, entry: Path) -> bool:
        if not entry.is_file():
            return False
        limit = self.settings.upload_size_limit
        return limit == -1 or entry.stat().st_size < limit

    async def _index_entry(self, entry: Path, parent_id: str | None, depth: int) -> tuple[RepositoryObject | None, bool]:
        source = FileSource(
            entry,
            self.config,
            self.settings.container_dir,
            self.settings.uri_prefix,
            self.settings.collection_class if entry.is_dir() else self.settings.binary_class,
            parent_id,
        )
        obj = None
        skipped = self._is_skipped(entry, depth)
        if not skipped:
            try:
                if self.meta_lookup is not None:
                    extra = self.meta_lookup.get_metadata(entry, source.get_metadata(), self.settings.require_metadata)
                    source.with_metadata(extra)
                obj = await self._sync(source, self._uploads(entry))
            except MetadataMissing:
                if not self.settings.require_metadata:
                    raise
            skipped = obj is None
        if skipped:
            self._skipped.append(source.rel_path)
            self.logger.debug({"message": "entry skipped", "path": source.rel_path}, pprint=True)
        else:
            await self.session.maybe_autocommit()
        return obj, skipped

    async def _sync(self, source: FileSource, upload: bool) -> RepositoryObject | None:
        cfg = self.config
        match await self.session.resolve_identifiers(source.get_ids(cfg.id_prop)):
            case resolution.NotFound():
                if self.settings.update_only:
                    return None
                content = source.get_binary_data() if upload else None
                obj = await self.session.create_object(source.get_metadata(), content, self.settings.repo_location)
                self._created.append(obj.uri)
                self.logger.debug({"message": "object created", "path": source.rel_path, "uri": obj.uri, "upload": upload}, pprint=True)
                return obj
            case resolution.Ambiguous(candidates=candidates):
                raise AmbiguousMatch(f"{len(candidates)} objects match {source.rel_path}", tuple(c.uri for c in candidates))
            case resolution.Found(obj=obj):
                pass

        versioning = self.settings.versioning
        if versioning is not VersioningMode.NONE and not source.is_dir and self._changed(obj, source, upload):
            link = await create_new_version(
                self.session, obj, source, upload=upload, pid_pass=self.settings.pid_pass, path=self.settings.repo_location
            )
            self._versioned.append(link.new.uri)
            return link.new

        merged = merge_metadata(obj.metadata, source.get_metadata(), preserve=[cfg.id_prop])
        obj = await self.session.update_metadata(obj, merged, UpdateMode.UPDATE)
        content = source.get_binary_data()
        if upload and versioning is VersioningMode.NONE and content is not None:
            obj = await self.session.update_content(obj, content)
        self._updated.append(obj.uri)
        self.logger.debug({"message": "object updated", "path": source.rel_path, "uri": obj.uri}, pprint=True)
        return obj

    def _changed(self, obj: RepositoryObject, source: FileSource, upload: bool) -> bool:
        cfg = self.config
        mode = self.settings.versioning
        if mode is VersioningMode.ALWAYS:
            return True
        if mode is VersioningMode.DIGEST:
            stored = obj.metadata.first_value(cfg.hash_prop)
            if stored is None:
                return upload
            return str(stored) != source.digest()
        stored = obj.metadata.first_literal(cfg.modified_prop)
        if stored is None:
            return True
        value = stored.toPython()
        if not isinstance(value, datetime):
            return True
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return source.modified() > value
