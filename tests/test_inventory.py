import pytest

from errors import InventoryError
from inventory import Inventory


def _document(**overrides):
    document = {
        "id": "urn:example:1",
        "digestAlgorithm": "sha512",
        "head": "v2",
        "manifest": {
            "h0": ["v1/content/data.csv"],
            "h1": ["v2/content/data.csv"],
        },
        "versions": {
            "v1": {"state": {"h0": ["data.csv"]}},
            "v2": {"state": {"h1": ["data.csv"]}},
        },
    }
    document.update(overrides)
    return document


def test_from_dict_reads_fields():
    inventory = Inventory.from_dict(_document())

    assert inventory.id == "urn:example:1"
    assert inventory.head == "v2"
    assert inventory.digest_algorithm == "sha512"
    assert inventory.head_state == {"h1": ["data.csv"]}
    assert inventory.physical_path("h0") == "v1/content/data.csv"


def test_digest_algorithm_defaults_to_sha512():
    document = _document()
    del document["digestAlgorithm"]

    assert Inventory.from_dict(document).digest_algorithm == "sha512"


def test_versions_are_ordered_numerically():
    versions = {f"v{n}": {"state": {}} for n in (10, 2, 1, 9)}
    inventory = Inventory.from_dict(
        _document(head="v10", manifest={}, versions=versions)
    )

    assert list(inventory.versions) == ["v1", "v2", "v9", "v10"]


def test_zero_padded_labels_are_ordered():
    versions = {label: {"state": {}} for label in ("v003", "v001", "v002")}
    inventory = Inventory.from_dict(
        _document(head="v003", manifest={}, versions=versions)
    )

    assert list(inventory.versions) == ["v001", "v002", "v003"]


def test_state_hash_missing_from_manifest_is_rejected():
    document = _document(manifest={"h1": ["v2/content/data.csv"]})

    with pytest.raises(InventoryError, match="no manifest entry"):
        Inventory.from_dict(document)


def test_head_must_be_a_known_version():
    with pytest.raises(InventoryError, match="Head version"):
        Inventory.from_dict(_document(head="v7"))


@pytest.mark.parametrize("missing", ["head", "versions", "manifest"])
def test_required_fields(missing):
    document = _document()
    del document[missing]

    with pytest.raises(InventoryError, match=missing):
        Inventory.from_dict(document)


def test_invalid_version_label():
    document = _document(
        head="version-1", versions={"version-1": {"state": {}}}, manifest={}
    )

    with pytest.raises(InventoryError, match="Invalid version label"):
        Inventory.from_dict(document)


def test_unsupported_digest_algorithm():
    with pytest.raises(InventoryError, match="Unsupported digest"):
        Inventory.from_dict(_document(digestAlgorithm="crc32"))


def test_state_paths_must_be_lists():
    document = _document()
    document["versions"]["v2"]["state"]["h1"] = "data.csv"

    with pytest.raises(InventoryError, match="must list paths"):
        Inventory.from_dict(document)


def test_digest_lookups():
    inventory = Inventory.from_dict(_document())

    assert inventory.digest_for_logical_path("data.csv") == "h1"
    assert inventory.digest_for_logical_path("data.csv", version="v1") == "h0"
    assert inventory.digest_for_logical_path("other.csv") is None
