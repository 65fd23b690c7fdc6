"""
Consistency Checker - do the files a catalog references exist in the store?

Resolution is two-phase: a cheap lookup in the head state, and only when
that fails a scan of the whole version history to tell "removed or moved"
apart from "never existed".
"""

from dataclasses import dataclass
from typing import List, Union

from catalog import FileEntity
from inventory import (
    Inventory,
    ResolvedAtHead,
    ResolvedInEarlierVersion,
    Unresolved,
)
from report import (
    Reporter,
    Finding,
    FILE_RESOLVED,
    FILE_DRIFT_DETECTED,
    FILE_UNRESOLVED,
)


ResolutionOutcome = Union[ResolvedAtHead, ResolvedInEarlierVersion, Unresolved]


def resolve_logical_path(inventory: Inventory, logical_path: str) -> ResolutionOutcome:
    """
    Resolve a logical path against an inventory.

    Returns:
        ResolvedAtHead with the manifest physical path if present at head,
        ResolvedInEarlierVersion mapping every version that holds the path
        to its physical path, or Unresolved.
    """
    digest = inventory.digest_for_logical_path(logical_path)
    if digest is not None:
        return ResolvedAtHead(inventory.physical_path(digest))

    found = {}
    for version, state in inventory.versions.items():
        for digest, logical_paths in state.items():
            if logical_path in logical_paths:
                found[version] = inventory.physical_path(digest)
                break

    if found:
        return ResolvedInEarlierVersion(found)

    return Unresolved()


@dataclass(frozen=True)
class FileCheck:
    """Outcome of resolving one File Entity."""

    entity: FileEntity
    outcome: ResolutionOutcome

    @property
    def at_head(self) -> bool:
        return isinstance(self.outcome, ResolvedAtHead)


def check_entities(
    object_path: str,
    inventory: Inventory,
    entities: List[FileEntity],
    reporter: Reporter,
) -> List[FileCheck]:
    """Resolve every File Entity of one object and report each outcome."""
    checks = []

    for entity in entities:
        outcome = resolve_logical_path(inventory, entity.logical_path)

        if isinstance(outcome, ResolvedAtHead):
            reporter.report(
                Finding(
                    FILE_RESOLVED,
                    object_path,
                    f"-> {outcome.physical_path}",
                    file_id=entity.identifier,
                )
            )
        elif isinstance(outcome, ResolvedInEarlierVersion):
            reporter.report(
                Finding(
                    FILE_DRIFT_DETECTED,
                    object_path,
                    f"Not in head {inventory.head}; found in "
                    f"{', '.join(outcome.versions)}",
                    file_id=entity.identifier,
                    detail={"versions": dict(outcome.versions)},
                )
            )
        else:
            reporter.report(
                Finding(
                    FILE_UNRESOLVED,
                    object_path,
                    "Not present in any version",
                    file_id=entity.identifier,
                )
            )

        checks.append(FileCheck(entity, outcome))

    return checks
