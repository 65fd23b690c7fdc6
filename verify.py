#!/usr/bin/env python3
"""
Portal Check Verify - Fixity verification of fetched files

Usage:
    python verify.py <object_path> <physical_path> --file <path> [--repo <path>]

The expected digest needs no computation: in an OCFL manifest the hash key
*is* the content digest under the inventory's digestAlgorithm. Only the
fetched copy is hashed, with the same algorithm, and the two are compared.
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Callable, Tuple

from inventory import Inventory
from report import (
    Reporter,
    Finding,
    FIXITY_OK,
    FIXITY_MISMATCH,
    MANIFEST_CORRELATION_FAILURE,
)
from utils import compute_file_hash, format_bytes, DEFAULT_DIGEST_ALGORITHM


MATCH = "match"
MISMATCH = "mismatch"
NO_MANIFEST_ENTRY = "no_manifest_entry"

FileHasher = Callable[[Path, str], Tuple[str, int]]


class FixityResult:
    """Result of comparing a fetched file against its manifest digest."""

    def __init__(self, physical_path: str, algorithm: str):
        self.physical_path = physical_path
        self.algorithm = algorithm
        self.status = NO_MANIFEST_ENTRY
        self.expected: Optional[str] = None
        self.observed: Optional[str] = None
        self.size_bytes = 0

    def passed(self) -> bool:
        """Check if the fetched bytes match the manifest."""
        return self.status == MATCH

    @property
    def mismatch(self) -> bool:
        return self.status == MISMATCH

    def format_report(self, verbose: bool = True) -> str:
        """Format fixity report."""
        lines = []

        if self.passed():
            lines.append("✓ FIXITY PASSED")
        elif self.status == NO_MANIFEST_ENTRY:
            lines.append("✗ FIXITY NOT CHECKED")
            lines.append(f"\nNo manifest entry lists {self.physical_path}")
            return "\n".join(lines)
        else:
            lines.append("✗ FIXITY FAILED")

        lines.append(f"\n  Physical path: {self.physical_path}")
        lines.append(
            f"  Size:          {self.size_bytes:,} bytes ({format_bytes(self.size_bytes)})"
        )

        if verbose or not self.passed():
            lines.append(f"  Algorithm:     {self.algorithm}")
            lines.append(f"  Expected:      {self.expected}")
            lines.append(f"  Observed:      {self.observed}")

        return "\n".join(lines)


def find_manifest_digest(
    manifest: Dict[str, List[str]], physical_path: str
) -> Optional[str]:
    """Hash key of the manifest entry whose path list holds ``physical_path``."""
    for digest, paths in manifest.items():
        if physical_path in paths:
            return digest
    return None


def check_fixity(
    manifest: Dict[str, List[str]],
    physical_path: str,
    local_path: Path,
    algorithm: str = DEFAULT_DIGEST_ALGORITHM,
    hasher: FileHasher = compute_file_hash,
) -> FixityResult:
    """
    Compare a fetched file with the manifest digest for ``physical_path``.

    Args:
        manifest: Inventory manifest (hash -> physical paths)
        physical_path: Physical path resolution produced for the file
        local_path: The freshly downloaded copy
        algorithm: Digest algorithm the manifest uses
        hasher: Streaming file hasher (path, algorithm) -> (hex, size)

    Returns:
        FixityResult; status NO_MANIFEST_ENTRY if nothing correlates
    """
    result = FixityResult(physical_path, algorithm)

    expected = find_manifest_digest(manifest, physical_path)
    if expected is None:
        return result

    observed, size = hasher(Path(local_path), algorithm)

    result.expected = expected
    result.observed = observed
    result.size_bytes = size
    result.status = MATCH if observed.lower() == expected.lower() else MISMATCH
    return result


class FixityValidator:
    """Checks fetched files against an inventory and reports the outcome."""

    def __init__(self, reporter: Reporter, hasher: FileHasher = compute_file_hash):
        self.reporter = reporter
        self.hasher = hasher

    def verify(
        self,
        inventory: Inventory,
        physical_path: str,
        local_path: Path,
        object_path: str,
        file_id: Optional[str] = None,
    ) -> FixityResult:
        result = check_fixity(
            inventory.manifest,
            physical_path,
            local_path,
            algorithm=inventory.digest_algorithm,
            hasher=self.hasher,
        )

        if result.status == NO_MANIFEST_ENTRY:
            self.reporter.report(
                Finding(
                    MANIFEST_CORRELATION_FAILURE,
                    object_path,
                    f"No manifest entry for {physical_path}",
                    file_id=file_id,
                    detail={"physical_path": physical_path},
                )
            )
        elif result.passed():
            self.reporter.report(
                Finding(
                    FIXITY_OK,
                    object_path,
                    f"{result.algorithm} {result.observed[:16]}... "
                    f"({format_bytes(result.size_bytes)})",
                    file_id=file_id,
                )
            )
        else:
            self.reporter.report(
                Finding(
                    FIXITY_MISMATCH,
                    object_path,
                    f"{result.algorithm} digest mismatch for {physical_path}",
                    file_id=file_id,
                    detail={
                        "expected": result.expected,
                        "observed": result.observed,
                        "size_bytes": result.size_bytes,
                    },
                )
            )

        return result


def main():
    """CLI entry point: check a local copy against an object's manifest."""
    if len(sys.argv) < 5:
        print(
            "Usage: python verify.py <object_path> <physical_path> --file <path> [options]",
            file=sys.stderr,
        )
        print("\nOptions:", file=sys.stderr)
        print("  --repo <path>    OCFL storage root (default: .)", file=sys.stderr)
        print("  --quiet          Suppress verbose output", file=sys.stderr)
        sys.exit(2)

    from errors import RepositoryError
    from repository import OcflRepository, OcflObject

    object_path = sys.argv[1]
    physical_path = sys.argv[2]
    file_path = None
    repo_root = "."
    verbose = True

    i = 3
    while i < len(sys.argv):
        arg = sys.argv[i]
        if arg == "--file" and i + 1 < len(sys.argv):
            file_path = sys.argv[i + 1]
            i += 2
        elif arg == "--repo" and i + 1 < len(sys.argv):
            repo_root = sys.argv[i + 1]
            i += 2
        elif arg == "--quiet":
            verbose = False
            i += 1
        else:
            print(f"Unknown argument: {arg}", file=sys.stderr)
            sys.exit(2)

    if not file_path:
        print("Error: --file <path> is required", file=sys.stderr)
        sys.exit(2)

    try:
        repo = OcflRepository(repo_root)
        inventory = OcflObject(repo.root / object_path, repo.root).get_inventory()
        result = check_fixity(
            inventory.manifest,
            physical_path,
            Path(file_path),
            algorithm=inventory.digest_algorithm,
        )
    except (RepositoryError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(result.format_report(verbose=verbose))
    sys.exit(0 if result.passed() else 1)


if __name__ == "__main__":
    main()
