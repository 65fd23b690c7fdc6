"""Exception hierarchy shared by the repository, fetch and config layers."""


class RepositoryError(Exception):
    """Base exception for repository errors."""

    pass


class RepositoryNotInitializedError(RepositoryError):
    """Raised when the OCFL storage root is missing or not declared."""

    pass


class InventoryError(RepositoryError):
    """Raised when an object's inventory is unreadable or violates its invariants."""

    pass


class CatalogNotFoundError(RepositoryError):
    """Raised when no accepted catalog filename is present in the head state."""

    pass


class CatalogUnparsableError(RepositoryError):
    """Raised when the catalog document cannot be parsed."""

    pass


class LogicalPathNotFoundError(RepositoryError):
    """Raised when a logical path is absent from an object's head version."""

    pass


class FetchError(Exception):
    """Remote fetch failed (network, HTTP status, write or length error)."""

    pass


class ConfigError(Exception):
    """Raised for invalid configuration values or config files."""

    pass
