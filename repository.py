"""
Repository Loader - read-only access to an OCFL storage root.

Layout::

    <root>/0=ocfl_1.0
    <root>/<any/nesting>/<object>/0=ocfl_object_1.0
    <root>/<any/nesting>/<object>/inventory.json
    <root>/<any/nesting>/<object>/v1/content/...

Objects are found by their declaration file and never descended into. Each
object's RO-Crate catalog is read from the head version only, and a
CatalogRecord lives for one verification pass.
"""

from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Dict, Any, Iterator, List, Tuple, Sequence
import json
import os

from errors import (
    RepositoryNotInitializedError,
    InventoryError,
    CatalogNotFoundError,
    CatalogUnparsableError,
    LogicalPathNotFoundError,
)
from inventory import Inventory
from report import (
    Reporter,
    Finding,
    CATALOG_NOT_FOUND,
    CATALOG_UNPARSABLE,
    INVENTORY_UNREADABLE,
    OBJECT_LOADED,
)


# OCFL namaste declarations
ROOT_DECLARATION = "0=ocfl_1.0"
OBJECT_DECLARATION = "0=ocfl_object_1.0"
INVENTORY_FILE = "inventory.json"

# Accepted RO-Crate catalog names, in priority order
DEFAULT_CATALOGS = ("ro-crate-metadata.json", "ro-crate-metadata.jsonld")


class OcflObject:
    """One versioned object inside an OCFL storage root (read-only)."""

    def __init__(self, object_root: Path, repo_root: Path):
        self.path = Path(object_root)
        self.repo_root = Path(repo_root)
        self._inventory: Optional[Inventory] = None

    @property
    def relative_path(self) -> str:
        """Object path relative to the storage root (posix separators)."""
        return self.path.relative_to(self.repo_root).as_posix()

    def get_inventory(self) -> Inventory:
        """
        Load and validate the object's root inventory.json.

        The inventory is read once per object; objects are not expected to
        change while a scan is in progress.

        Raises:
            InventoryError: If the inventory is missing, malformed or inconsistent
        """
        if self._inventory is None:
            inventory_path = self.path / INVENTORY_FILE
            try:
                with open(inventory_path, "r", encoding="utf-8") as f:
                    document = json.load(f)
            except OSError as e:
                raise InventoryError(f"Cannot read {inventory_path}: {e}") from e
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise InventoryError(f"Malformed {inventory_path}: {e}") from e

            self._inventory = Inventory.from_dict(document)

        return self._inventory

    def content_path(self, physical_path: str) -> Path:
        """Filesystem location of a manifest physical path."""
        return self.path / physical_path

    def resolve_head(self, logical_path: str) -> Path:
        """
        Resolve a logical path to its content file as of the head version.

        Raises:
            LogicalPathNotFoundError: If the head state has no such logical path
        """
        inventory = self.get_inventory()
        digest = inventory.digest_for_logical_path(logical_path)
        if digest is None:
            raise LogicalPathNotFoundError(
                f"{logical_path} not in head version {inventory.head} of {self.relative_path}"
            )
        return self.content_path(inventory.physical_path(digest))

    def __repr__(self) -> str:
        return f"OcflObject({self.relative_path!r})"


class OcflRepository:
    """OCFL storage root: discovery of objects below a declared root."""

    def __init__(self, repo_root: str = "."):
        """
        Open an existing storage root.

        Args:
            repo_root: Directory containing the 0=ocfl_1.0 declaration

        Raises:
            RepositoryNotInitializedError: If the root or its declaration is missing
        """
        self.root = Path(repo_root)
        self._verify_initialized()

    def _verify_initialized(self) -> None:
        """Verify the storage root exists and declares itself, raise if not."""
        if not self.root.is_dir():
            raise RepositoryNotInitializedError(
                f"Repository root not found: {self.root}"
            )

        if not (self.root / ROOT_DECLARATION).exists():
            raise RepositoryNotInitializedError(
                f"Not an OCFL storage root (missing {ROOT_DECLARATION}): {self.root}"
            )

    def objects(self) -> Iterator[OcflObject]:
        """
        Walk the storage root and yield every object, in sorted path order.

        Object directories are not descended into: content below an object
        root is never another object.
        """
        for dirpath, dirnames, filenames in os.walk(self.root):
            if OBJECT_DECLARATION in filenames:
                dirnames[:] = []
                yield OcflObject(Path(dirpath), self.root)
            else:
                dirnames.sort()


@dataclass(frozen=True)
class CatalogRecord:
    """A loaded catalog bound to the object it was read from."""

    path: str
    crate: Dict[str, Any]
    catalog_file: str
    ocfl_object: OcflObject
    inventory: Inventory


def find_catalog(
    inventory: Inventory, catalogs: Sequence[str]
) -> Tuple[str, str]:
    """
    Find the catalog file in the head state.

    Filenames are tried in priority order, so ro-crate-metadata.json wins
    over ro-crate-metadata.jsonld when an object carries both.

    Returns:
        (catalog_file, digest)

    Raises:
        CatalogNotFoundError: If no accepted filename is present at head
    """
    head_state = inventory.head_state
    for catalog_file in catalogs:
        for digest, logical_paths in head_state.items():
            if catalog_file in logical_paths:
                return catalog_file, digest

    raise CatalogNotFoundError(
        f"None of {', '.join(catalogs)} in head version {inventory.head}"
    )


def load_catalog_record(
    ocfl_object: OcflObject, catalogs: Sequence[str] = DEFAULT_CATALOGS
) -> CatalogRecord:
    """
    Load one object's catalog from its current version.

    Raises:
        InventoryError: Inventory unreadable or inconsistent
        CatalogNotFoundError: No accepted catalog filename at head
        CatalogUnparsableError: Catalog present but not a usable JSON-LD document
    """
    inventory = ocfl_object.get_inventory()
    catalog_file, digest = find_catalog(inventory, catalogs)
    catalog_path = ocfl_object.content_path(inventory.physical_path(digest))

    try:
        with open(catalog_path, "r", encoding="utf-8") as f:
            crate = json.load(f)
    except OSError as e:
        raise CatalogUnparsableError(f"Cannot read {catalog_file}: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CatalogUnparsableError(f"Malformed {catalog_file}: {e}") from e

    if not isinstance(crate, dict) or not isinstance(crate.get("@graph"), list):
        raise CatalogUnparsableError(f"{catalog_file} has no @graph array")

    return CatalogRecord(
        path=ocfl_object.relative_path,
        crate=crate,
        catalog_file=catalog_file,
        ocfl_object=ocfl_object,
        inventory=inventory,
    )


def iter_catalog_records(
    repo: OcflRepository,
    reporter: Reporter,
    catalogs: Sequence[str] = DEFAULT_CATALOGS,
) -> Iterator[CatalogRecord]:
    """
    Yield a CatalogRecord for every object that has a loadable catalog.

    Objects that cannot be loaded are reported and skipped; they never stop
    the walk.
    """
    for ocfl_object in repo.objects():
        object_path = ocfl_object.relative_path

        try:
            record = load_catalog_record(ocfl_object, catalogs)
        except InventoryError as e:
            reporter.report(Finding(INVENTORY_UNREADABLE, object_path, str(e)))
            continue
        except CatalogNotFoundError as e:
            reporter.report(
                Finding(
                    CATALOG_NOT_FOUND,
                    object_path,
                    str(e),
                    detail={"accepted": list(catalogs)},
                )
            )
            continue
        except CatalogUnparsableError as e:
            reporter.report(Finding(CATALOG_UNPARSABLE, object_path, str(e)))
            continue

        reporter.report(
            Finding(
                OBJECT_LOADED,
                object_path,
                f"Loaded {record.catalog_file} (head {record.inventory.head})",
            )
        )
        yield record


def load_catalog_records(
    repo: OcflRepository,
    reporter: Reporter,
    catalogs: Sequence[str] = DEFAULT_CATALOGS,
) -> List[CatalogRecord]:
    """Eager form of iter_catalog_records()."""
    return list(iter_catalog_records(repo, reporter, catalogs))
