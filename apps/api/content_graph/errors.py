"""Content graph error types."""


class ContentGraphError(Exception):
    """Base class for content graph and analytics failures."""


class NotFoundError(ContentGraphError):
    """Raised when a referenced node or edge endpoint does not exist."""


class ValidationError(ContentGraphError):
    """Raised for malformed input such as out-of-range confidence or self-referential edges."""


class CycleDetectedError(ContentGraphError):
    """Raised when an attach would make a node its own ancestor. The write is rejected."""

    def __init__(self, parent_id: str, child_id: str) -> None:
        self.parent_id = parent_id
        self.child_id = child_id
        super().__init__(
            f"Attaching {child_id} under {parent_id} would create a cycle: "
            f"{child_id} is already an ancestor of {parent_id}."
        )


class ConflictError(ContentGraphError):
    """Raised when creating a node whose id is already registered."""
