"""
Catalog Indexer - minimal typed projection of an RO-Crate JSON-LD graph.

Only two questions are ever asked of a crate: which nodes are Files (and
what are their ids), and what is the object's identifier in a given
namespace. Nothing else in the linked-data schema is modelled.
"""

from dataclasses import dataclass
from urllib.parse import unquote
from typing import Dict, Any, List, Optional, Tuple, FrozenSet

from report import Reporter, Finding, IDENTIFIER_NOT_FOUND


FILE_TYPE = "File"
PROPERTY_VALUE_TYPE = "PropertyValue"
ROOT_ID = "./"
DESCRIPTOR_IDS = ("ro-crate-metadata.json", "ro-crate-metadata.jsonld")

DEFAULT_NAMESPACE = "public_ocfl"


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class CrateNode:
    """One node of the crate graph: an id, a type set and raw properties."""

    def __init__(self, data: Dict[str, Any]):
        self.data = data
        self.id: str = str(data.get("@id", ""))
        self.types: FrozenSet[str] = frozenset(
            str(t) for t in _as_list(data.get("@type"))
        )

    @property
    def is_file(self) -> bool:
        return FILE_TYPE in self.types

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __repr__(self) -> str:
        return f"CrateNode({self.id!r}, types={sorted(self.types)})"


@dataclass(frozen=True)
class FileEntity:
    """A File node reference: its id is a path relative to the object."""

    identifier: str
    types: FrozenSet[str]

    @property
    def logical_path(self) -> str:
        # RO-Crate ids are percent-encoded relative URI references
        path = self.identifier
        if path.startswith("./"):
            path = path[2:]
        return unquote(path)


class CrateGraph:
    """Index of a crate's @graph by node id."""

    def __init__(self, crate: Dict[str, Any]):
        self.nodes: List[CrateNode] = [
            CrateNode(item) for item in crate.get("@graph", []) if isinstance(item, dict)
        ]
        self._by_id: Dict[str, CrateNode] = {}
        for node in self.nodes:
            self._by_id.setdefault(node.id, node)

    def get(self, node_id: str) -> Optional[CrateNode]:
        return self._by_id.get(node_id)

    def dereference(self, value: Any) -> Optional[CrateNode]:
        """Turn an inline node or an {"@id": ...} reference into a CrateNode."""
        if isinstance(value, dict):
            if set(value) == {"@id"}:
                return self.get(str(value["@id"]))
            return CrateNode(value)
        if isinstance(value, str):
            return self.get(value)
        return None

    @property
    def root(self) -> Optional[CrateNode]:
        """Root dataset, found via the metadata descriptor's ``about``."""
        for descriptor_id in DESCRIPTOR_IDS:
            descriptor = self.get(descriptor_id)
            if descriptor is not None:
                about = self.dereference(descriptor.get("about"))
                if about is not None:
                    return about
        return self.get(ROOT_ID)

    def named_identifier(self, namespace: str) -> Optional[str]:
        """
        Value of the root's PropertyValue identifier whose name is ``namespace``.

        Returns None when the root has no such identifier.
        """
        root = self.root
        if root is None:
            return None

        for value in _as_list(root.get("identifier")):
            node = self.dereference(value)
            if node is None or PROPERTY_VALUE_TYPE not in node.types:
                continue
            if node.get("name") == namespace and node.get("value") is not None:
                return str(node.get("value"))

        return None

    def file_entities(self) -> List[FileEntity]:
        """File nodes in graph order."""
        return [
            FileEntity(identifier=node.id, types=node.types)
            for node in self.nodes
            if node.is_file and node.id
        ]


def resolve_identifier(
    graph: CrateGraph,
    namespace: str,
    fallback: str,
    reporter: Reporter,
    object_path: Optional[str] = None,
) -> Tuple[str, bool]:
    """
    Canonical identifier for an object, or ``fallback`` when there is none.

    The substitution is reported as IDENTIFIER_NOT_FOUND so it is clear that
    downstream keys (and portal URLs) use the store path instead.

    Returns:
        (identifier, used_fallback)
    """
    identifier = graph.named_identifier(namespace)
    if identifier is not None:
        return identifier, False

    reporter.report(
        Finding(
            IDENTIFIER_NOT_FOUND,
            object_path or fallback,
            f"No identifier in namespace {namespace!r}; using {fallback!r}",
            detail={"namespace": namespace, "fallback": fallback},
        )
    )
    return fallback, True


def index_catalog(
    crate: Dict[str, Any],
    namespace: str,
    fallback: str,
    reporter: Reporter,
) -> Tuple[str, List[FileEntity]]:
    """Identifier and File Entities for one parsed catalog."""
    graph = CrateGraph(crate)
    identifier, _ = resolve_identifier(
        graph, namespace, fallback, reporter, object_path=fallback
    )
    return identifier, graph.file_entities()
