"""Graph store access for the library catalog.

Two backends share one small transactional interface:

- ``Neo4jGraphStore`` talks to a Neo4j server through the official driver.
- ``InMemoryGraphStore`` keeps nodes and relationships in process; it is used
  by the test-suite and for local development without a database.

Repositories (see ``repositories.py``) only ever see a ``GraphTransaction``,
so the catalog logic does not depend on which backend is configured.
"""
from __future__ import annotations

import copy
import itertools
import logging
import re
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from neo4j import READ_ACCESS, WRITE_ACCESS, GraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# Node labels and relationship types known to the catalog.
AUTHOR = "Author"
BOOK = "Book"
ROLE = "Role"
USER = "User"
WRITTEN_BY = "WRITTEN_BY"
HAS_ROLE = "HAS_ROLE"

LABELS = frozenset({AUTHOR, BOOK, ROLE, USER})
RELATIONSHIP_TYPES = frozenset({WRITTEN_BY, HAS_ROLE})

# (label, property) pairs that must be unique across nodes.
UNIQUE_PROPERTIES = ((AUTHOR, "name"),)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StoreError(Exception):
    """Base class for graph store failures."""


class StoreUnavailable(StoreError):
    """The store cannot be reached or a read against it failed."""


class WriteFailed(StoreError):
    """The store was reachable but refused or failed a write."""


@dataclass
class NodeRecord:
    id: str
    label: str
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.properties}


def _check_label(label: str) -> str:
    if label not in LABELS:
        raise ValueError(f"Unknown node label: {label}")
    return label


def _check_relationship(rel_type: str) -> str:
    if rel_type not in RELATIONSHIP_TYPES:
        raise ValueError(f"Unknown relationship type: {rel_type}")
    return rel_type


def _check_property(key: str) -> str:
    if not _IDENTIFIER.match(key):
        raise ValueError(f"Invalid property name: {key!r}")
    return key


class GraphTransaction(ABC):
    """Node and relationship operations available inside one store transaction."""

    @abstractmethod
    def create_node(self, label: str, properties: Dict[str, Any]) -> NodeRecord:
        ...

    @abstractmethod
    def merge_node(self, label: str, key: str, properties: Dict[str, Any]) -> Tuple[NodeRecord, bool]:
        """Return the node whose ``key`` equals ``properties[key]``, creating it if absent.

        The boolean is True when this call created the node.
        """

    @abstractmethod
    def get_node(self, label: str, node_id: str) -> Optional[NodeRecord]:
        ...

    @abstractmethod
    def find_nodes(self, label: str, **match: Any) -> List[NodeRecord]:
        """All nodes with ``label`` whose properties equal every ``match`` item."""

    @abstractmethod
    def relate(self, from_id: str, rel_type: str, to_id: str) -> None:
        ...

    @abstractmethod
    def related(self, node_id: str, rel_type: str, label: str) -> List[NodeRecord]:
        """Targets of outgoing ``rel_type`` relationships from ``node_id``."""

    @abstractmethod
    def nodes_with_related(
        self, label: str, rel_type: str, target_label: str
    ) -> List[Tuple[NodeRecord, Optional[NodeRecord]]]:
        """Every ``label`` node paired with its first ``rel_type`` target (or None)."""

    @abstractmethod
    def delete_nodes(self, label: str) -> int:
        """Delete every ``label`` node with its relationships; return the count."""


class GraphStore(ABC):
    backend = "abstract"

    @abstractmethod
    def transaction(self, write: bool = True) -> Iterator[GraphTransaction]:
        """Context manager yielding a transaction; commits on success, rolls back on error."""

    @abstractmethod
    def ensure_constraints(self) -> None:
        ...

    @abstractmethod
    def ping(self) -> bool:
        ...

    @abstractmethod
    def close(self) -> None:
        ...


# ------------------------- In-process backend ------------------------- #
class InMemoryGraphStore(GraphStore):
    """Process-local graph. Transactions are serialized and rolled back from a snapshot."""

    backend = "memory"

    def __init__(self) -> None:
        self._nodes: Dict[str, NodeRecord] = {}
        self._relationships: List[Tuple[str, str, str]] = []
        self._unique: set = set()
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        self._closed = False

    @contextmanager
    def transaction(self, write: bool = True) -> Iterator[GraphTransaction]:
        if self._closed:
            raise StoreUnavailable("In-memory graph store is closed")
        with self._lock:
            snapshot = (copy.deepcopy(self._nodes), list(self._relationships))
            try:
                yield _InMemoryTransaction(self)
            except Exception:
                self._nodes, self._relationships = snapshot
                raise

    def ensure_constraints(self) -> None:
        with self._lock:
            self._unique.update(UNIQUE_PROPERTIES)

    def ping(self) -> bool:
        return not self._closed

    def close(self) -> None:
        self._closed = True

    def _next_id(self) -> str:
        return str(next(self._ids))


class _InMemoryTransaction(GraphTransaction):
    def __init__(self, store: InMemoryGraphStore) -> None:
        self._store = store

    def create_node(self, label: str, properties: Dict[str, Any]) -> NodeRecord:
        _check_label(label)
        for unique_label, key in self._store._unique:
            if unique_label == label and key in properties and self.find_nodes(label, **{key: properties[key]}):
                raise WriteFailed(f"{label} with {key}={properties[key]!r} already exists")
        node = NodeRecord(id=self._store._next_id(), label=label, properties=dict(properties))
        self._store._nodes[node.id] = node
        return copy.deepcopy(node)

    def merge_node(self, label: str, key: str, properties: Dict[str, Any]) -> Tuple[NodeRecord, bool]:
        existing = self.find_nodes(label, **{_check_property(key): properties[key]})
        if existing:
            return existing[0], False
        return self.create_node(label, properties), True

    def get_node(self, label: str, node_id: str) -> Optional[NodeRecord]:
        _check_label(label)
        node = self._store._nodes.get(node_id)
        if node is None or node.label != label:
            return None
        return copy.deepcopy(node)

    def find_nodes(self, label: str, **match: Any) -> List[NodeRecord]:
        _check_label(label)
        return [
            copy.deepcopy(node)
            for node in self._store._nodes.values()
            if node.label == label and all(node.properties.get(k) == v for k, v in match.items())
        ]

    def relate(self, from_id: str, rel_type: str, to_id: str) -> None:
        _check_relationship(rel_type)
        if from_id not in self._store._nodes or to_id not in self._store._nodes:
            raise WriteFailed(f"Cannot create {rel_type}: node {from_id} or {to_id} does not exist")
        self._store._relationships.append((from_id, rel_type, to_id))

    def related(self, node_id: str, rel_type: str, label: str) -> List[NodeRecord]:
        _check_relationship(rel_type)
        targets = []
        for source, kind, target in self._store._relationships:
            if source == node_id and kind == rel_type:
                node = self.get_node(label, target)
                if node is not None:
                    targets.append(node)
        return targets

    def nodes_with_related(
        self, label: str, rel_type: str, target_label: str
    ) -> List[Tuple[NodeRecord, Optional[NodeRecord]]]:
        pairs = []
        for node in self.find_nodes(label):
            targets = self.related(node.id, rel_type, target_label)
            pairs.append((node, targets[0] if targets else None))
        return pairs

    def delete_nodes(self, label: str) -> int:
        _check_label(label)
        doomed = {node_id for node_id, node in self._store._nodes.items() if node.label == label}
        for node_id in doomed:
            del self._store._nodes[node_id]
        self._store._relationships = [
            rel for rel in self._store._relationships if rel[0] not in doomed and rel[2] not in doomed
        ]
        return len(doomed)


# ------------------------- Neo4j backend ------------------------- #
@contextmanager
def _translate_errors(action: str, write: bool) -> Iterator[None]:
    """Turn driver exceptions into the catalog's store errors."""
    try:
        yield
    except StoreError:
        raise
    except DriverError as exc:
        raise StoreUnavailable(f"Graph store unavailable while {action}: {exc}") from exc
    except Neo4jError as exc:
        if write:
            raise WriteFailed(f"Graph store rejected {action}: {exc}") from exc
        raise StoreUnavailable(f"Graph store failed while {action}: {exc}") from exc


class Neo4jGraphStore(GraphStore):
    backend = "neo4j"

    def __init__(self, uri: str, user: str, password: Optional[str], database: Optional[str] = None,
                 connection_timeout: float = 10.0, driver=None) -> None:
        self._database = database
        if driver is None:
            driver = GraphDatabase.driver(uri, auth=(user, password or ""), connection_timeout=connection_timeout)
        self._driver = driver
        logger.info(f"Neo4j graph store configured: uri={uri}, database={database or 'default'}")

    @contextmanager
    def transaction(self, write: bool = True) -> Iterator[GraphTransaction]:
        mode = WRITE_ACCESS if write else READ_ACCESS
        with _translate_errors("opening a session", write):
            session = self._driver.session(database=self._database, default_access_mode=mode)
        try:
            with _translate_errors("beginning a transaction", write):
                tx = session.begin_transaction()
            try:
                yield Neo4jTransaction(tx, write)
                with _translate_errors("committing", write):
                    tx.commit()
            except Exception:
                self._rollback(tx)
                raise
        finally:
            session.close()

    @staticmethod
    def _rollback(tx) -> None:
        try:
            if not tx.closed():
                tx.rollback()
        except (DriverError, Neo4jError) as exc:
            logger.warning(f"Rollback failed: {exc}")

    def ensure_constraints(self) -> None:
        with _translate_errors("creating constraints", True):
            with self._driver.session(database=self._database) as session:
                for label, key in UNIQUE_PROPERTIES:
                    name = f"{label.lower()}_{key}_unique"
                    session.run(
                        f"CREATE CONSTRAINT {name} IF NOT EXISTS "
                        f"FOR (n:{label}) REQUIRE n.{key} IS UNIQUE"
                    ).consume()
                    logger.info(f"Ensured constraint {name}")

    def ping(self) -> bool:
        try:
            self._driver.verify_connectivity()
            return True
        except (DriverError, Neo4jError) as exc:
            logger.warning(f"Neo4j connectivity check failed: {exc}")
            return False

    def close(self) -> None:
        self._driver.close()


class Neo4jTransaction(GraphTransaction):
    def __init__(self, tx, write: bool = True) -> None:
        self._tx = tx
        self._write = write

    def _run(self, query: str, **params: Any):
        with _translate_errors("running a query", self._write):
            result = self._tx.run(query, params)
            records = list(result)
            summary = result.consume()
        return records, summary

    @staticmethod
    def _node(label: str, record, id_key: str = "id", props_key: str = "props") -> NodeRecord:
        return NodeRecord(id=record[id_key], label=label, properties=dict(record[props_key]))

    def create_node(self, label: str, properties: Dict[str, Any]) -> NodeRecord:
        records, _ = self._run(
            f"CREATE (n:{_check_label(label)}) SET n = $props "
            "RETURN elementId(n) AS id, properties(n) AS props",
            props=properties,
        )
        if not records:
            raise WriteFailed(f"Creating a {label} node returned nothing")
        return self._node(label, records[0])

    def merge_node(self, label: str, key: str, properties: Dict[str, Any]) -> Tuple[NodeRecord, bool]:
        records, summary = self._run(
            f"MERGE (n:{_check_label(label)} {{{_check_property(key)}: $value}}) "
            "ON CREATE SET n += $props "
            "RETURN elementId(n) AS id, properties(n) AS props",
            value=properties[key],
            props=properties,
        )
        if not records:
            raise WriteFailed(f"Merging a {label} node returned nothing")
        return self._node(label, records[0]), summary.counters.nodes_created > 0

    def get_node(self, label: str, node_id: str) -> Optional[NodeRecord]:
        records, _ = self._run(
            f"MATCH (n:{_check_label(label)}) WHERE elementId(n) = $id "
            "RETURN elementId(n) AS id, properties(n) AS props",
            id=node_id,
        )
        return self._node(label, records[0]) if records else None

    def find_nodes(self, label: str, **match: Any) -> List[NodeRecord]:
        where = " AND ".join(f"n.{_check_property(key)} = ${key}" for key in match)
        query = f"MATCH (n:{_check_label(label)})"
        if where:
            query += f" WHERE {where}"
        records, _ = self._run(query + " RETURN elementId(n) AS id, properties(n) AS props", **match)
        return [self._node(label, record) for record in records]

    def relate(self, from_id: str, rel_type: str, to_id: str) -> None:
        _, summary = self._run(
            "MATCH (a), (b) WHERE elementId(a) = $from_id AND elementId(b) = $to_id "
            f"CREATE (a)-[:{_check_relationship(rel_type)}]->(b)",
            from_id=from_id,
            to_id=to_id,
        )
        if summary.counters.relationships_created != 1:
            raise WriteFailed(f"Cannot create {rel_type}: node {from_id} or {to_id} does not exist")

    def related(self, node_id: str, rel_type: str, label: str) -> List[NodeRecord]:
        records, _ = self._run(
            f"MATCH (a)-[:{_check_relationship(rel_type)}]->(b:{_check_label(label)}) "
            "WHERE elementId(a) = $id RETURN elementId(b) AS id, properties(b) AS props",
            id=node_id,
        )
        return [self._node(label, record) for record in records]

    def nodes_with_related(
        self, label: str, rel_type: str, target_label: str
    ) -> List[Tuple[NodeRecord, Optional[NodeRecord]]]:
        records, _ = self._run(
            f"MATCH (n:{_check_label(label)}) "
            f"OPTIONAL MATCH (n)-[:{_check_relationship(rel_type)}]->(m:{_check_label(target_label)}) "
            "RETURN elementId(n) AS id, properties(n) AS props, "
            "elementId(m) AS related_id, properties(m) AS related_props"
        )
        pairs: List[Tuple[NodeRecord, Optional[NodeRecord]]] = []
        seen = set()
        for record in records:
            if record["id"] in seen:
                continue
            seen.add(record["id"])
            target = None
            if record["related_id"] is not None:
                target = self._node(target_label, record, "related_id", "related_props")
            pairs.append((self._node(label, record), target))
        return pairs

    def delete_nodes(self, label: str) -> int:
        _, summary = self._run(f"MATCH (n:{_check_label(label)}) DETACH DELETE n")
        return summary.counters.nodes_deleted


def create_store(config: Optional[Settings] = None) -> GraphStore:
    """Build the graph store selected by ``GRAPH_BACKEND``."""
    config = config or default_settings
    backend = config.graph_backend.lower()
    if backend == "memory":
        logger.info("Using in-memory graph store")
        return InMemoryGraphStore()
    if backend == "neo4j":
        return Neo4jGraphStore(
            uri=config.neo4j_uri,
            user=config.neo4j_user,
            password=config.neo4j_password,
            database=config.neo4j_database,
            connection_timeout=config.neo4j_connection_timeout,
        )
    raise ValueError(f"Unknown GRAPH_BACKEND: {config.graph_backend}")
