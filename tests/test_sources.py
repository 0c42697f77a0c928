"""Tests for object sources and external metadata lookups."""

from datetime import timezone

import pytest
from rdflib import Graph, Literal, URIRef

from reposchema.metadata import Metadata
from reposync.exceptions import MetadataLookupError, MetadataMissing
from reposync.lookup import ConstantLookup, FileLookup, GraphLookup
from reposync.sources import FileSource
from reposync.transport.memory import content_digest

PREFIX = "https://example.org/files/"
DESCRIPTION = "https://vocabs.example.org/hasDescription"


@pytest.fixture
def data_dir(tmp_path):
    data = tmp_path / "data"
    (data / "sub").mkdir(parents=True)
    (data / "report 1.txt").write_bytes(b"report")
    return data


class TestFileSource:
    def test_identifier_from_relative_path(self, config, tmp_path, data_dir):
        source = FileSource(data_dir / "report 1.txt", config, tmp_path, PREFIX)

        assert source.rel_path == "data/report 1.txt"
        assert source.get_id() == PREFIX + "data/report%201.txt"

    def test_path_outside_container(self, config, tmp_path, data_dir):
        source = FileSource(tmp_path / "elsewhere.txt", config, data_dir, PREFIX)

        with pytest.raises(ValueError):
            source.get_id()

    def test_file_metadata(self, config, tmp_path, data_dir):
        source = FileSource(
            data_dir / "report 1.txt", config, tmp_path, PREFIX, "https://vocabs.example.org/Resource", "https://id.example.org/p"
        )

        meta = source.get_metadata()

        assert meta.references(config.id_prop) == [PREFIX + "data/report%201.txt"]
        assert meta.references(config.type_prop) == ["https://vocabs.example.org/Resource"]
        assert meta.references(config.parent_prop) == ["https://id.example.org/p"]
        assert meta.literals(config.location_prop) == [Literal("data/report 1.txt")]
        assert meta.literals(config.title_prop) == [Literal("report 1.txt")]
        assert meta.literals(config.mime_prop) == [Literal("text/plain")]
        assert meta.literals(config.size_prop) == [Literal(6)]
        assert meta.has(config.modified_prop)

    def test_directory_metadata(self, config, tmp_path, data_dir):
        source = FileSource(data_dir / "sub", config, tmp_path, PREFIX)

        meta = source.get_metadata()

        assert source.is_dir
        assert source.get_binary_data() is None
        assert meta.literals(config.mime_prop) == [Literal("inode/directory")]
        assert not meta.has(config.size_prop)

    def test_binary_data_and_digest(self, config, tmp_path, data_dir):
        source = FileSource(data_dir / "report 1.txt", config, tmp_path, PREFIX)

        assert source.get_binary_data() == data_dir / "report 1.txt"
        assert source.digest() == content_digest(b"report")
        assert source.modified().tzinfo is timezone.utc

    def test_unknown_mime_type(self, config, tmp_path, data_dir):
        (data_dir / "blob").write_bytes(b"\x00")

        source = FileSource(data_dir / "blob", config, tmp_path, PREFIX)

        assert source.mime_type() == "application/octet-stream"

    def test_extra_metadata(self, config, tmp_path, data_dir):
        """External metadata replaces file-derived values but never drops identifiers."""
        extra = Metadata(
            [
                (config.id_prop, URIRef("https://example.org/report")),
                (config.title_prop, Literal("Annual report")),
            ]
        )
        source = FileSource(data_dir / "report 1.txt", config, tmp_path, PREFIX).with_metadata(extra)

        meta = source.get_metadata()

        assert meta.literals(config.title_prop) == [Literal("Annual report")]
        assert source.get_ids(config.id_prop) == [PREFIX + "data/report%201.txt", "https://example.org/report"]


class TestLookups:
    def test_constant_lookup(self, tmp_path):
        meta = Metadata([(DESCRIPTION, Literal("same for all"))])
        lookup = ConstantLookup(meta)

        found = lookup.get_metadata(tmp_path / "x", Metadata())
        found.add_literal(DESCRIPTION, "changed")

        assert lookup.get_metadata(tmp_path / "y", Metadata()) == meta

    def test_missing_metadata(self, tmp_path):
        lookup = FileLookup()

        assert not lookup.get_metadata(tmp_path / "x.txt", Metadata())
        with pytest.raises(MetadataMissing):
            lookup.get_metadata(tmp_path / "x.txt", Metadata(), require=True)

    def test_sidecar_in_relative_location(self, data_dir):
        (data_dir / "meta").mkdir()
        (data_dir / "meta" / "report 1.txt.ttl").write_text(f'<https://example.org/r> <{DESCRIPTION}> "sidecar" .\n')
        lookup = FileLookup(["missing", "meta"])

        found = lookup.get_metadata(data_dir / "report 1.txt", Metadata())

        assert found.literals(DESCRIPTION) == [Literal("sidecar")]

    def test_sidecar_with_two_descriptions(self, data_dir):
        (data_dir / "report 1.txt.ttl").write_text(
            f'<https://example.org/r> <{DESCRIPTION}> "one" .\n<https://example.org/s> <{DESCRIPTION}> "two" .\n'
        )

        with pytest.raises(MetadataLookupError):
            FileLookup().get_metadata(data_dir / "report 1.txt", Metadata())

    def test_graph_lookup_by_identifier(self, config, tmp_path):
        graph = Graph()
        node = URIRef("https://example.org/desc")
        graph.add((node, URIRef(config.id_prop), URIRef(PREFIX + "data/a.txt")))
        graph.add((node, URIRef(DESCRIPTION), Literal("from graph")))
        lookup = GraphLookup(graph, config.id_prop)

        found = lookup.get_metadata(tmp_path / "a.txt", Metadata([(config.id_prop, URIRef(PREFIX + "data/a.txt"))]))
        missing = lookup.get_metadata(tmp_path / "b.txt", Metadata([(config.id_prop, URIRef(PREFIX + "data/b.txt"))]))

        assert found.literals(DESCRIPTION) == [Literal("from graph")]
        assert not missing

    def test_graph_lookup_ambiguous(self, config, tmp_path):
        graph = Graph()
        for name in ("one", "two"):
            graph.add((URIRef("https://example.org/" + name), URIRef(config.id_prop), URIRef(PREFIX + "data/a.txt")))
        lookup = GraphLookup(graph, config.id_prop)

        with pytest.raises(MetadataLookupError):
            lookup.get_metadata(tmp_path / "a.txt", Metadata([(config.id_prop, URIRef(PREFIX + "data/a.txt"))]))
