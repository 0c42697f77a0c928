"""Object producers: things that can become repository objects.

An `ObjectSource` offers the capability set the indexer relies on:
a primary identifier, the full identifier list, the metadata describing the
object and (optionally) binary content. Sources are small independent types
composed by the indexer rather than a class hierarchy.
"""

import hashlib
import mimetypes
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote

from rdflib import XSD

from reposchema.config import RepositoryConfig
from reposchema.metadata import Metadata
from reposync.merge import merge_metadata


class ObjectSource(ABC):
    """Abstract producer of a repository object."""

    @abstractmethod
    def get_id(self) -> str:
        """Primary identifier, derived deterministically from the source."""

    @abstractmethod
    def get_metadata(self) -> Metadata:
        """Metadata describing the object, including its identifiers."""

    def get_ids(self, id_prop: str) -> list[str]:
        """Primary identifier followed by every other identifier in the metadata."""
        ids = [self.get_id(), *self.get_metadata().identifiers(id_prop)]
        return list(dict.fromkeys(ids))

    def get_binary_data(self) -> Path | bytes | None:
        """Binary content, or None for metadata-only objects."""
        return None


class FileSource(ObjectSource):
    """A file or directory below the container directory.

    The identifier is `uri_prefix` followed by the URL-quoted path relative to
    `container_dir`, so the same file always maps to the same object.
    """

    DIRECTORY_MIME_TYPE = "inode/directory"

    def __init__(
        self,
        path: str | Path,
        config: RepositoryConfig,
        container_dir: str | Path,
        uri_prefix: str,
        rdf_class: str | None = None,
        parent_id: str | None = None,
    ) -> None:
        self.path = Path(path)
        self.config = config
        self.container_dir = Path(container_dir)
        self.uri_prefix = uri_prefix
        self.rdf_class = rdf_class
        self.parent_id = parent_id
        self._extra: Metadata | None = None
        self._preserve: tuple[str, ...] = ()

    @property
    def rel_path(self) -> str:
        try:
            return self.path.relative_to(self.container_dir).as_posix()
        except ValueError:
            raise ValueError(f"path {self.path} is outside the container directory {self.container_dir}") from None

    @property
    def is_dir(self) -> bool:
        return self.path.is_dir()

    def get_id(self) -> str:
        return self.uri_prefix + quote(self.rel_path)

    def with_metadata(self, metadata: Metadata, preserve: tuple[str, ...] = ()) -> "FileSource":
        """Attach external metadata merged over the file-derived description."""
        self._extra = metadata
        self._preserve = tuple(preserve)
        return self

    def base_metadata(self) -> Metadata:
        cfg = self.config
        meta = Metadata()
        meta.add_reference(cfg.id_prop, self.get_id())
        if self.rdf_class:
            meta.add_reference(cfg.type_prop, self.rdf_class)
        if self.parent_id:
            meta.add_reference(cfg.parent_prop, self.parent_id)
        meta.add_literal(cfg.location_prop, self.rel_path)
        meta.add_literal(cfg.title_prop, self.path.name)
        meta.add_literal(cfg.filename_prop, self.path.name)
        meta.add_literal(cfg.mime_prop, self.mime_type())
        stat = self.path.stat()
        if not self.is_dir:
            meta.add_literal(cfg.size_prop, stat.st_size)
        meta.add_literal(cfg.modified_prop, self.modified(), datatype=str(XSD.dateTime))
        return meta

    def get_metadata(self) -> Metadata:
        meta = self.base_metadata()
        if self._extra:
            meta = merge_metadata(meta, self._extra, preserve=(self.config.id_prop, *self._preserve))
        return meta

    def get_binary_data(self) -> Path | None:
        return None if self.is_dir else self.path

    def mime_type(self) -> str:
        if self.is_dir:
            return self.DIRECTORY_MIME_TYPE
        guessed, _ = mimetypes.guess_type(self.path.name)
        return guessed or "application/octet-stream"

    def size(self) -> int:
        return 0 if self.is_dir else self.path.stat().st_size

    def modified(self) -> datetime:
        return datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)

    def digest(self) -> str:
        """Content digest in the form the repository stores (`urn:sha1:<hex>`)."""
        sha1 = hashlib.sha1()
        with open(self.path, "rb") as f:
            for chunk in iter(lambda: f.read(1 << 16), b""):
                sha1.update(chunk)
        return "urn:sha1:" + sha1.hexdigest()

    def __repr__(self) -> str:
        return f"FileSource({self.rel_path})"
