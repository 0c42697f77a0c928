"""Identifier normalisation.

External sources spell the same identifier in different ways
(`http` vs `https`, trailing slashes, mirror hosts). Normalisation rules are
ordered `(regex, replacement)` pairs; the first rule that matches rewrites
the identifier and no further rules are tried.
"""

import re
from typing import Sequence

from rdflib import URIRef

from reposchema.metadata import Metadata


class UriNormalizer:
    """Ordered regex rewrite rules for identifier URIs."""

    def __init__(self, rules: Sequence[tuple[str, str]] = ()):
        self._rules = [(re.compile(pattern), replacement) for pattern, replacement in rules]

    def standardize(self, uri: str) -> str:
        for pattern, replacement in self._rules:
            normalized, count = pattern.subn(replacement, uri, count=1)
            if count:
                return normalized
        return uri

    def standardize_metadata(self, metadata: Metadata, id_prop: str) -> Metadata:
        """Rewrite every identifier of `metadata` in place and return it."""
        if not self._rules:
            return metadata
        for identifier in metadata.identifiers(id_prop):
            normalized = self.standardize(identifier)
            if normalized != identifier:
                metadata.replace(id_prop, URIRef(identifier), URIRef(normalized))
        return metadata

    def __bool__(self) -> bool:
        return bool(self._rules)
