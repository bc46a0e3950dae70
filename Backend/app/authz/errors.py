"""
Authorization error types.

Denial is not an error: the engine returns False for it. These
exceptions cover malformed questions, store outages and violations of
the administrative invariants.
"""


class AuthzError(Exception):
    """Base exception for the authorization package."""
    pass


class CatalogError(AuthzError, ValueError):
    """A permission or role string is not part of the closed catalog."""

    kind = "value"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown {self.kind}: {value!r}")


class UnknownPermissionError(CatalogError):
    kind = "permission"


class UnknownRoleError(CatalogError):
    kind = "role"


class AuthzDataAccessError(AuthzError):
    """The underlying store failed while resolving a decision.

    Callers must treat this as fail-closed; it is never an allow.
    """
    pass


class TenantAdminError(AuthzError):
    """Base exception for administrative store operations."""
    pass


class EntityNotFoundError(TenantAdminError):
    """Requested tenant, membership, assignment or profile does not exist."""
    pass


class DuplicateEntityError(TenantAdminError):
    """A uniqueness constraint would be violated."""
    pass


class InvalidEntityError(TenantAdminError):
    """Field values break a store constraint (name or language pattern)."""
    pass


class InvalidAssignmentError(InvalidEntityError):
    """A role assignment or membership breaks a store invariant."""
    pass
