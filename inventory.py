"""
Inventory Model - typed view of an OCFL object's version history and manifest.

An inventory document looks like::

    {
      "id": "...",
      "digestAlgorithm": "sha512",
      "head": "v2",
      "manifest": {"<hash>": ["v1/content/data.csv"]},
      "versions": {"v1": {"state": {"<hash>": ["data.csv"]}}, "v2": {...}}
    }

State maps hashes to *logical* paths; the manifest maps the same hashes to
*physical* paths relative to the object root.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from errors import InventoryError
from utils import DEFAULT_DIGEST_ALGORITHM, DIGEST_ALGORITHMS


VERSION_LABEL = re.compile(r"^v(\d+)$")

# hash -> logical paths
VersionState = Dict[str, List[str]]


def _version_number(label: str) -> int:
    match = VERSION_LABEL.match(label)
    if not match:
        raise InventoryError(f"Invalid version label: {label!r}")
    return int(match.group(1))


def _path_map(block: Any, where: str) -> Dict[str, List[str]]:
    """Validate a hash -> [paths] block (version state or manifest)."""
    if not isinstance(block, dict):
        raise InventoryError(f"Inventory {where} must be an object")

    paths_by_digest = {}
    for digest, paths in block.items():
        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            raise InventoryError(f"Inventory {where}: {digest[:16]}... must list paths")
        paths_by_digest[digest] = list(paths)
    return paths_by_digest


class Inventory:
    """Version history and manifest of one stored object."""

    def __init__(
        self,
        head: str,
        versions: Dict[str, VersionState],
        manifest: Dict[str, List[str]],
        object_id: Optional[str] = None,
        digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM,
    ):
        self.id = object_id
        self.head = head
        self.digest_algorithm = digest_algorithm
        self.manifest = manifest

        # Order by numeric version so v2 < v10 and zero-padded labels still sort
        self.versions: Dict[str, VersionState] = {
            label: versions[label]
            for label in sorted(versions, key=_version_number)
        }

        self._validate()

    def _validate(self) -> None:
        if self.head not in self.versions:
            raise InventoryError(f"Head version {self.head!r} not in versions")

        if self.digest_algorithm.lower() not in DIGEST_ALGORITHMS:
            raise InventoryError(
                f"Unsupported digest algorithm: {self.digest_algorithm!r}"
            )

        for digest, paths in self.manifest.items():
            if not paths:
                raise InventoryError(f"Manifest entry {digest[:16]}... has no paths")

        for label, state in self.versions.items():
            for digest in state:
                if digest not in self.manifest:
                    raise InventoryError(
                        f"Version {label} references {digest[:16]}... "
                        f"which has no manifest entry"
                    )

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> "Inventory":
        """Build an Inventory from a parsed inventory.json document."""
        if not isinstance(document, dict):
            raise InventoryError("Inventory document must be a JSON object")

        for key in ("head", "versions", "manifest"):
            if key not in document:
                raise InventoryError(f"Inventory missing required field: {key}")

        if not isinstance(document["head"], str):
            raise InventoryError("Inventory head must be a version label")

        if not isinstance(document["versions"], dict):
            raise InventoryError("Inventory versions must be an object")

        versions = {}
        for label, version in document["versions"].items():
            if not isinstance(version, dict) or not isinstance(version.get("state"), dict):
                raise InventoryError(f"Version {label} has no state block")
            versions[label] = _path_map(version["state"], f"version {label} state")

        manifest = _path_map(document["manifest"], "manifest")

        return cls(
            head=document["head"],
            versions=versions,
            manifest=manifest,
            object_id=document.get("id"),
            digest_algorithm=document.get(
                "digestAlgorithm", DEFAULT_DIGEST_ALGORITHM
            ),
        )

    @property
    def head_state(self) -> VersionState:
        return self.versions[self.head]

    def physical_path(self, digest: str) -> str:
        """First physical path for a content hash (OCFL deduplicates on ingest)."""
        return self.manifest[digest][0]

    def digest_for_logical_path(
        self, logical_path: str, version: Optional[str] = None
    ) -> Optional[str]:
        """Hash a logical path resolves to in ``version`` (default: head)."""
        state = self.versions[version or self.head]
        for digest, paths in state.items():
            if logical_path in paths:
                return digest
        return None

    def __repr__(self) -> str:
        return (
            f"Inventory(id={self.id!r}, head={self.head!r}, "
            f"versions={len(self.versions)}, manifest={len(self.manifest)})"
        )


@dataclass(frozen=True)
class ResolvedAtHead:
    """Logical path is present in the current version."""

    physical_path: str

    @property
    def resolved(self) -> bool:
        return True


@dataclass(frozen=True)
class ResolvedInEarlierVersion:
    """Logical path only exists in superseded versions (catalog/storage drift)."""

    versions: Dict[str, str] = field(default_factory=dict)

    @property
    def resolved(self) -> bool:
        return False


@dataclass(frozen=True)
class Unresolved:
    """Logical path never existed under this name in any version."""

    @property
    def resolved(self) -> bool:
        return False
