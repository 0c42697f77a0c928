"""Tests for identifier normalisation rules."""

from rdflib import URIRef

from reposchema.metadata import Metadata
from reposync.uri_norm import UriNormalizer

ID = "https://vocabs.example.org/hasIdentifier"

RULES = (
    (r"^http://example\.org/", "https://example.org/"),
    (r"^https?://mirror\.example\.org/", "https://example.org/"),
    (r"^https://example\.org/(.*)/$", r"https://example.org/\1"),
)


class TestUriNormalizer:
    def test_first_matching_rule_wins(self):
        normalizer = UriNormalizer(RULES)

        assert normalizer.standardize("http://example.org/a/") == "https://example.org/a/"
        assert normalizer.standardize("http://mirror.example.org/a") == "https://example.org/a"
        assert normalizer.standardize("https://example.org/a/") == "https://example.org/a"

    def test_unmatched_identifier_is_kept(self):
        normalizer = UriNormalizer(RULES)

        assert normalizer.standardize("https://other.org/x") == "https://other.org/x"

    def test_no_rules(self):
        normalizer = UriNormalizer()

        assert not normalizer
        assert normalizer.standardize("http://example.org/a") == "http://example.org/a"

    def test_metadata_identifiers_rewritten_in_place(self):
        meta = Metadata(
            [
                (ID, URIRef("http://example.org/a")),
                (ID, URIRef("https://example.org/a")),
                ("https://vocabs.example.org/relation", URIRef("http://example.org/b")),
            ]
        )

        result = UriNormalizer(RULES).standardize_metadata(meta, ID)

        assert result is meta
        assert meta.references(ID) == ["https://example.org/a"]
        assert meta.references("https://vocabs.example.org/relation") == ["http://example.org/b"]
