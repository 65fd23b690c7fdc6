"""Fixtures that build real OCFL storage roots on disk."""

import json
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import pytest

from utils import hash_bytes


def write_object(
    repo_root: Path,
    object_dir: str,
    versions: List[Dict[str, bytes]],
    object_id: Optional[str] = None,
    algorithm: str = "sha512",
) -> Path:
    """
    Write an OCFL object whose versions hold the given logical files.

    Content is deduplicated the way OCFL does it: a digest is stored once,
    under the first version that introduced it.
    """
    object_root = repo_root / object_dir
    object_root.mkdir(parents=True)
    (object_root / "0=ocfl_object_1.0").write_text("ocfl_object_1.0\n")

    manifest: Dict[str, List[str]] = {}
    inventory_versions = {}

    for number, files in enumerate(versions, 1):
        label = f"v{number}"
        state: Dict[str, List[str]] = {}
        for logical_path, content in files.items():
            digest = hash_bytes(content, algorithm)
            if digest not in manifest:
                physical = f"{label}/content/{logical_path}"
                target = object_root / physical
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(content)
                manifest[digest] = [physical]
            state.setdefault(digest, []).append(logical_path)
        inventory_versions[label] = {
            "created": "2024-01-01T00:00:00Z",
            "state": state,
        }

    inventory = {
        "id": object_id or f"urn:example:{object_dir}",
        "type": "https://ocfl.io/1.0/spec/#inventory",
        "digestAlgorithm": algorithm,
        "head": f"v{len(versions)}",
        "manifest": manifest,
        "versions": inventory_versions,
    }
    (object_root / "inventory.json").write_text(json.dumps(inventory, indent=2))
    return object_root


def make_crate(
    files: List[str],
    identifier: Optional[str] = None,
    namespace: str = "public_ocfl",
) -> bytes:
    """RO-Crate metadata document with File nodes and an optional named identifier."""
    root = {
        "@id": "./",
        "@type": "Dataset",
        "name": "Test dataset",
        "hasPart": [{"@id": f} for f in files],
    }
    graph = [
        {
            "@id": "ro-crate-metadata.json",
            "@type": "CreativeWork",
            "about": {"@id": "./"},
            "conformsTo": {"@id": "https://w3id.org/ro/crate/1.1"},
        },
        root,
    ]

    if identifier is not None:
        root["identifier"] = [{"@id": "_:identifier"}]
        graph.append(
            {
                "@id": "_:identifier",
                "@type": "PropertyValue",
                "name": namespace,
                "value": identifier,
            }
        )

    for f in files:
        graph.append({"@id": f, "@type": "File", "name": f})

    return json.dumps(
        {"@context": "https://w3id.org/ro/crate/1.1/context", "@graph": graph}
    ).encode("utf-8")


@pytest.fixture
def ocfl_root(tmp_path):
    """Empty, declared OCFL storage root."""
    root = tmp_path / "ocfl"
    root.mkdir()
    (root / "0=ocfl_1.0").write_text("ocfl_1.0\n")
    return root


@pytest.fixture
def portal_files():
    """URL path -> bytes served by the mock portal."""
    return {}


@pytest.fixture
def portal_requests():
    """URL paths the mock portal was asked for, in order."""
    return []


@pytest.fixture
def portal_client(portal_files, portal_requests):
    """httpx client whose transport serves ``portal_files`` (404 otherwise)."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        portal_requests.append(request.url.path)
        content = portal_files.get(request.url.path)
        if content is None:
            return httpx.Response(404, content=b"not found")
        return httpx.Response(200, content=content)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    yield client
    client.close()
