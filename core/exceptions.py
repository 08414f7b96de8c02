"""
Exceptions - Error taxonomy shared by the store, ledger and API layers.

    NotFoundError   -> unknown unit or student id
    ValidationError -> template save/import rejected (names the offending node/id)
    StorageError    -> persistence read/write failure or unparsable record
"""

from typing import Optional


class InsightMapError(Exception):
    """Base class for all domain errors."""


class NotFoundError(InsightMapError):
    """Raised when a unit or student id cannot be resolved."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"Unknown {kind}: {identifier}")
        self.kind = kind
        self.identifier = identifier


class ValidationError(InsightMapError):
    """
    Raised when a template fails structural or referential-integrity checks.

    Attributes:
        node_id: Node whose definition is at fault (if any)
        offending_id: The id that could not be accepted (duplicate, dangling, ...)
    """

    def __init__(self, message: str, node_id: Optional[str] = None,
                 offending_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.node_id = node_id
        self.offending_id = offending_id

    def to_dict(self) -> dict:
        return {
            "error": "validation_error",
            "message": self.message,
            "node_id": self.node_id,
            "offending_id": self.offending_id,
        }


class StorageError(InsightMapError):
    """Raised when the key-value backend fails or holds a corrupt record."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key
