"""External metadata lookup for indexed files.

The indexer asks a `MetadataLookupInterface` for additional metadata about
each file it visits. A lookup returns an empty `Metadata` when it has
nothing to say; with `require=True` it raises `MetadataMissing` instead,
which the indexer turns into a skip when metadata is mandatory.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

from rdflib import Graph, URIRef

from reposchema.metadata import Metadata
from reposync.exceptions import MetadataLookupError, MetadataMissing
from reposync.logging import setup_logging


class MetadataLookupInterface(ABC):
    """Source of external metadata for a file being indexed."""

    @abstractmethod
    def find(self, path: Path, metadata: Metadata) -> Metadata:
        """Return metadata for the file at `path`, or an empty `Metadata`."""

    def get_metadata(self, path: str | Path, metadata: Metadata, require: bool = False) -> Metadata:
        """Look up metadata for `path`.

        Args:
            path: File being indexed.
            metadata: The metadata the indexer derived for it so far.
            require: Raise `MetadataMissing` when nothing is found.

        Raises:
            MetadataMissing: nothing found and `require` is set.
            MetadataLookupError: more than one candidate description found.
        """
        found = self.find(Path(path), metadata)
        if not found and require:
            raise MetadataMissing(f"no external metadata for {path}")
        return found


class ConstantLookup(MetadataLookupInterface):
    """Returns the same metadata for every file."""

    def __init__(self, metadata: Metadata) -> None:
        self.metadata = metadata

    def find(self, path: Path, metadata: Metadata) -> Metadata:
        return self.metadata.copy()


def _single_description(graph: Graph, source: str) -> Metadata:
    subjects = sorted(set(graph.subjects()), key=lambda s: s.n3())
    if len(subjects) > 1:
        raise MetadataLookupError(f"{source} holds {len(subjects)} descriptions")
    if not subjects:
        return Metadata()
    return Metadata.from_graph(graph, subjects[0])


class FileLookup(MetadataLookupInterface):
    """Reads sidecar RDF files named after the indexed file.

    For `data/scan.tif` and the default extension the lookup tries
    `<location>/scan.tif.ttl` for every location in turn; relative locations
    are taken relative to the indexed file's directory. The first sidecar
    holding a description wins.
    """

    def __init__(self, locations: Sequence[str | Path] = (".",), extension: str = ".ttl", format: str | None = None) -> None:
        self.locations = [Path(loc) for loc in locations]
        self.extension = extension
        self.format = format
        self.logger = setup_logging()

    def sidecars(self, path: Path) -> list[Path]:
        name = path.name + self.extension
        return [(loc if loc.is_absolute() else path.parent / loc) / name for loc in self.locations]

    def find(self, path: Path, metadata: Metadata) -> Metadata:
        for sidecar in self.sidecars(path):
            if not sidecar.is_file():
                continue
            graph = Graph()
            graph.parse(str(sidecar), format=self.format)
            found = _single_description(graph, str(sidecar))
            if found:
                self.logger.debug({"message": "sidecar metadata found", "path": str(path), "sidecar": str(sidecar)}, pprint=True)
                return found
        return Metadata()


class GraphLookup(MetadataLookupInterface):
    """Finds the node of a metadata graph sharing an identifier with the file."""

    def __init__(self, graph: Graph, id_prop: str) -> None:
        self.graph = graph
        self.id_prop = URIRef(id_prop)

    def find(self, path: Path, metadata: Metadata) -> Metadata:
        candidates = set()
        for identifier in metadata.identifiers(str(self.id_prop)):
            candidates.update(self.graph.subjects(self.id_prop, URIRef(identifier)))
        if len(candidates) > 1:
            raise MetadataLookupError(f"{len(candidates)} descriptions match {path}")
        if not candidates:
            return Metadata()
        return Metadata.from_graph(self.graph, candidates.pop())
