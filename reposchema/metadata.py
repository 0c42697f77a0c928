"""RDF metadata of a single repository object or graph node.

`Metadata` is a multimap from property URI to a *set* of RDF terms. Values
are rdflib terms:

- `URIRef` for references to other objects (including identifiers),
- `Literal` for plain values,
- `BNode` only while a graph is being imported; blank references must be
  resolved before anything is written to the repository.

Because values are sets, adding the same triple twice is a no-op and value
order is never significant. Two `Metadata` instances compare equal when
they hold exactly the same triples.
"""

from typing import Iterable, Iterator

from rdflib import BNode, Graph, Literal, URIRef
from rdflib.term import Node

Value = URIRef | Literal | BNode


class Metadata:
    """Set-valued property map with helpers for references and literals.

    Example:
        ```python
        meta = Metadata()
        meta.add_reference(config.id_prop, "https://example.org/a")
        meta.add_literal(config.title_prop, "A")
        meta.add_literal(config.title_prop, "A")  # no duplicate
        assert len(meta) == 2
        ```
    """

    def __init__(self, triples: Iterable[tuple[str, Value]] = ()) -> None:
        self._props: dict[str, set[Value]] = {}
        for prop, value in triples:
            self.add(prop, value)

    # construction helpers

    @classmethod
    def from_graph(cls, graph: Graph, subject: Node) -> "Metadata":
        """Collect all triples of `subject` in `graph`."""
        meta = cls()
        for prop, value in graph.predicate_objects(subject):
            meta.add(str(prop), value)  # type: ignore[arg-type]
        return meta

    def to_graph(self, subject: Node | None = None) -> Graph:
        subject = subject if subject is not None else URIRef(".")
        graph = Graph()
        for prop, value in self.triples():
            graph.add((subject, URIRef(prop), value))
        return graph

    # mutation

    def add(self, prop: str, value: Value) -> None:
        if not isinstance(value, (URIRef, Literal, BNode)):
            raise TypeError(f"metadata values must be rdflib terms, got {type(value).__name__}")
        self._props.setdefault(str(prop), set()).add(value)

    def add_reference(self, prop: str, uri: str) -> None:
        self.add(prop, URIRef(uri))

    def add_literal(self, prop: str, value: object, datatype: str | None = None) -> None:
        if isinstance(value, Literal):
            self.add(prop, value)
        else:
            self.add(prop, Literal(value, datatype=URIRef(datatype) if datatype else None))

    def update(self, other: "Metadata") -> None:
        """Add every triple of `other`."""
        for prop, value in other.triples():
            self.add(prop, value)

    def delete(self, prop: str, value: Value | str | None = None) -> None:
        """Remove one value of `prop`, or the whole property when `value` is None.

        A plain string value is matched against references.
        """
        prop = str(prop)
        if prop not in self._props:
            return
        if value is None:
            del self._props[prop]
            return
        if isinstance(value, str) and not isinstance(value, (URIRef, Literal, BNode)):
            value = URIRef(value)
        self._props[prop].discard(value)
        if not self._props[prop]:
            del self._props[prop]

    def replace(self, prop: str, old: Value, new: Value) -> None:
        self.delete(prop, old)
        self.add(prop, new)

    # queries

    def properties(self) -> list[str]:
        return sorted(self._props)

    def values(self, prop: str) -> list[Value]:
        return sorted(self._props.get(str(prop), ()), key=str)

    def references(self, prop: str) -> list[str]:
        """String form of every URI value of `prop`."""
        return [str(v) for v in self.values(prop) if isinstance(v, URIRef)]

    def literals(self, prop: str) -> list[Literal]:
        return [v for v in self.values(prop) if isinstance(v, Literal)]

    def first_literal(self, prop: str) -> Literal | None:
        literals = self.literals(prop)
        return literals[0] if literals else None

    def first_value(self, prop: str) -> Value | None:
        values = self.values(prop)
        return values[0] if values else None

    def identifiers(self, id_prop: str) -> list[str]:
        return self.references(id_prop)

    def has(self, prop: str, value: Value | None = None) -> bool:
        prop = str(prop)
        if value is None:
            return prop in self._props
        return value in self._props.get(prop, ())

    def triples(self) -> Iterator[tuple[str, Value]]:
        for prop in self.properties():
            for value in self.values(prop):
                yield prop, value

    def copy(self, skip: Iterable[str] = ()) -> "Metadata":
        """Deep copy, leaving out properties listed in `skip`."""
        skipped = {str(p) for p in skip}
        return Metadata((p, v) for p, v in self.triples() if p not in skipped)

    def filter(self, keep) -> "Metadata":
        """Copy holding only triples for which `keep(prop, value)` is true."""
        return Metadata((p, v) for p, v in self.triples() if keep(p, v))

    def difference(self, other: "Metadata") -> "Metadata":
        """Triples present here but absent from `other`."""
        return self.filter(lambda p, v: not other.has(p, v))

    def to_ntriples(self, subject: str = ".") -> str:
        lines = []
        for prop, value in self.triples():
            lines.append(f"<{subject}> <{prop}> {value.n3()} .")
        return "\n".join(lines)

    # dunder protocol

    def __len__(self) -> int:
        return sum(len(values) for values in self._props.values())

    def __bool__(self) -> bool:
        return bool(self._props)

    def __contains__(self, prop: object) -> bool:
        return isinstance(prop, str) and prop in self._props

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Metadata):
            return NotImplemented
        return self._props == other._props

    def __repr__(self) -> str:
        return f"Metadata({len(self)} triples)"
