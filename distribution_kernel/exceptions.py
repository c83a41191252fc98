"""
Typed Exception Hierarchy for the Distribution Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the core can produce is returned to the caller as a typed
error carrying:
  1. A TYPED exception class (catch by type, not by message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA as attributes (not just a message string)

The UI layer maps each code to a toast or inline message; it never parses
message text.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DistributionKernelError (base)
    |
    +-- DistributionStateError
    |   +-- InvalidTransitionError
    |   |   +-- DiscrepanciesPresentError
    |   +-- InvalidStateError
    |
    +-- VerificationError
    |   +-- IncompleteVerificationError
    |   +-- InvalidVerificationStatusError
    |   +-- UnknownDocumentError
    |
    +-- DocumentError
    |   +-- DuplicateDocumentError
    |   +-- InvalidDocumentKindError
    |   +-- InvalidDocumentRefError
    |
    +-- NotFoundError
    |   +-- DistributionNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- DistributionTypeNotFoundError
    |   +-- DepartmentNotFoundError
    |
    +-- DistributionValidationError
    |   +-- SameDepartmentError
    |   +-- InvalidDistributionTypeError
    |
    +-- AuthorizationError
    |   +-- ForbiddenError
    |
    +-- ConcurrencyError
    |   +-- ConflictingUpdateError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- HistoryChainBrokenError
        +-- AdviceIntegrityError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                      | When Raised
--------------|---------------------------|-------------------------------------------
State         | INVALID_TRANSITION        | Current status is not the transition's "from"
              | DISCREPANCIES_PRESENT     | complete() without force on a discrepant bundle
              | INVALID_STATE             | Ledger write in the wrong status
--------------|---------------------------|-------------------------------------------
Verification  | INCOMPLETE_VERIFICATION   | Not every attached document has an entry
              | UNKNOWN_DOCUMENT          | Ref is not attached to the distribution
--------------|---------------------------|-------------------------------------------
Document      | DUPLICATE_DOCUMENT        | Same (kind, id) attached twice
              | INVALID_DOCUMENT_KIND     | Kind is not invoice/additional_document
--------------|---------------------------|-------------------------------------------
Not found     | DISTRIBUTION_NOT_FOUND    | Unknown distribution id
              | DOCUMENT_NOT_FOUND        | Document store cannot resolve the ref
              | DISTRIBUTION_TYPE_NOT_FOUND | Unknown type id
              | DEPARTMENT_NOT_FOUND      | Department directory has no such id
--------------|---------------------------|-------------------------------------------
Validation    | SAME_DEPARTMENT           | origin == destination
              | INVALID_DISTRIBUTION_TYPE | Bad code/priority/colour
--------------|---------------------------|-------------------------------------------
Authorization | FORBIDDEN                 | Actor not allowed for the operation
--------------|---------------------------|-------------------------------------------
Concurrency   | CONFLICTING_UPDATE        | Lost optimistic-lock race (retry with fresh state)
--------------|---------------------------|-------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION    | Modifying an append-only record
--------------|---------------------------|-------------------------------------------
Audit         | HISTORY_CHAIN_BROKEN      | History hash chain validation failed
              | ADVICE_INTEGRITY          | Transmittal advice content hash mismatch

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        portal.complete(distribution_id, actor_id)
    except DiscrepanciesPresentError as e:
        # Show e.discrepant to the actor before offering force=True
        ...
    except ConflictingUpdateError:
        # Re-read the distribution; the precondition may now differ
        ...

The core never retries.  ConflictingUpdateError is retried by the caller
with fresh state, because the precondition may legitimately differ.
"""


class DistributionKernelError(Exception):
    """
    Base exception for all distribution kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "DISTRIBUTION_KERNEL_ERROR"


# State machine exceptions


class DistributionStateError(DistributionKernelError):
    """Base exception for lifecycle status errors."""

    code: str = "DISTRIBUTION_STATE_ERROR"


class InvalidTransitionError(DistributionStateError):
    """The distribution's current status is not the transition's source."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        distribution_id: str,
        action: str,
        current_status: str,
        expected_status: str | None,
    ):
        self.distribution_id = distribution_id
        self.action = action
        self.current_status = current_status
        self.expected_status = expected_status
        super().__init__(
            f"Cannot {action} distribution {distribution_id}: "
            f"status is '{current_status}', expected '{expected_status}'"
        )


class DiscrepanciesPresentError(InvalidTransitionError):
    """
    Completion blocked because the distribution has discrepancies.

    Carries the discrepant document refs so the caller can present them
    before offering a forced completion.
    """

    code: str = "DISCREPANCIES_PRESENT"

    def __init__(self, distribution_id: str, discrepant: tuple):
        self.distribution_id = distribution_id
        self.action = "complete"
        self.current_status = "verified_receiver"
        self.expected_status = "verified_receiver"
        self.discrepant = discrepant
        DistributionStateError.__init__(
            self,
            f"Cannot complete distribution {distribution_id}: "
            f"{len(discrepant)} discrepant document(s); force required",
        )


class InvalidStateError(DistributionStateError):
    """A ledger operation was attempted in the wrong distribution status."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        distribution_id: str,
        operation: str,
        current_status: str,
        required_status: str,
    ):
        self.distribution_id = distribution_id
        self.operation = operation
        self.current_status = current_status
        self.required_status = required_status
        super().__init__(
            f"{operation} requires distribution {distribution_id} to be "
            f"'{required_status}', but it is '{current_status}'"
        )


# Verification exceptions


class VerificationError(DistributionKernelError):
    """Base exception for verification ledger errors."""

    code: str = "VERIFICATION_ERROR"


class IncompleteVerificationError(VerificationError):
    """Not every attached document has a verification entry for this side."""

    code: str = "INCOMPLETE_VERIFICATION"

    def __init__(self, distribution_id: str, side: str, unverified: tuple):
        self.distribution_id = distribution_id
        self.side = side
        self.unverified = unverified
        if unverified:
            detail = f"{len(unverified)} document(s) not verified by {side}"
        else:
            detail = "no documents attached"
        super().__init__(
            f"Incomplete {side} verification for distribution "
            f"{distribution_id}: {detail}"
        )


class InvalidVerificationStatusError(VerificationError):
    """Verification status is not one of ok, missing or damaged."""

    code: str = "INVALID_VERIFICATION_STATUS"

    def __init__(self, status: str):
        self.status = status
        super().__init__(
            f"Invalid verification status '{status}': "
            "expected 'ok', 'missing' or 'damaged'"
        )


class UnknownDocumentError(VerificationError):
    """The referenced document is not attached to the distribution."""

    code: str = "UNKNOWN_DOCUMENT"

    def __init__(self, distribution_id: str, document_ref: str):
        self.distribution_id = distribution_id
        self.document_ref = document_ref
        super().__init__(
            f"Document {document_ref} is not attached to distribution "
            f"{distribution_id}"
        )


# Document exceptions


class DocumentError(DistributionKernelError):
    """Base exception for document reference errors."""

    code: str = "DOCUMENT_ERROR"


class DuplicateDocumentError(DocumentError):
    """The same (kind, id) pair is already attached."""

    code: str = "DUPLICATE_DOCUMENT"

    def __init__(self, distribution_id: str | None, document_ref: str):
        self.distribution_id = distribution_id
        self.document_ref = document_ref
        target = f"distribution {distribution_id}" if distribution_id else "request"
        super().__init__(f"Document {document_ref} is already attached to {target}")


class InvalidDocumentKindError(DocumentError):
    """Document kind is not one of the supported kinds."""

    code: str = "INVALID_DOCUMENT_KIND"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(
            f"Invalid document kind '{kind}': "
            "expected 'invoice' or 'additional_document'"
        )


class InvalidDocumentRefError(DocumentError):
    """A document reference payload cannot be read."""

    code: str = "INVALID_DOCUMENT_REF"

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid document reference {value}: {reason}")


# Not-found exceptions


class NotFoundError(DistributionKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class DistributionNotFoundError(NotFoundError):
    """Distribution with given ID was not found."""

    code: str = "DISTRIBUTION_NOT_FOUND"

    def __init__(self, distribution_id: str):
        self.distribution_id = distribution_id
        super().__init__(f"Distribution not found: {distribution_id}")


class DocumentNotFoundError(NotFoundError):
    """The document store could not resolve the reference."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_ref: str):
        self.document_ref = document_ref
        super().__init__(f"Document not found: {document_ref}")


class DistributionTypeNotFoundError(NotFoundError):
    """Distribution type with given ID was not found."""

    code: str = "DISTRIBUTION_TYPE_NOT_FOUND"

    def __init__(self, type_id: str):
        self.type_id = type_id
        super().__init__(f"Distribution type not found: {type_id}")


class DepartmentNotFoundError(NotFoundError):
    """Department directory has no department with given ID."""

    code: str = "DEPARTMENT_NOT_FOUND"

    def __init__(self, department_id: str):
        self.department_id = department_id
        super().__init__(f"Department not found: {department_id}")


# Validation exceptions


class DistributionValidationError(DistributionKernelError):
    """Base exception for invalid distribution input."""

    code: str = "DISTRIBUTION_VALIDATION_ERROR"


class SameDepartmentError(DistributionValidationError):
    """Origin and destination departments must differ."""

    code: str = "SAME_DEPARTMENT"

    def __init__(self, department_id: str):
        self.department_id = department_id
        super().__init__(
            f"Origin and destination must differ (both are {department_id})"
        )


class InvalidDistributionTypeError(DistributionValidationError):
    """Distribution type attributes are invalid."""

    code: str = "INVALID_DISTRIBUTION_TYPE"

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid distribution type {field}={value!r}: {reason}")


# Authorization exceptions


class AuthorizationError(DistributionKernelError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class ForbiddenError(AuthorizationError):
    """The actor is not allowed to perform the operation."""

    code: str = "FORBIDDEN"

    def __init__(self, actor_id: str, operation: str, reason: str):
        self.actor_id = actor_id
        self.operation = operation
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not {operation}: {reason}")


# Concurrency exceptions


class ConcurrencyError(DistributionKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictingUpdateError(ConcurrencyError):
    """Optimistic locking conflict detected on the distribution row."""

    code: str = "CONFLICTING_UPDATE"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Conflicting update on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(DistributionKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify an append-only or locked record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Audit exceptions


class AuditError(DistributionKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class HistoryChainBrokenError(AuditError):
    """History hash chain validation failed."""

    code: str = "HISTORY_CHAIN_BROKEN"

    def __init__(self, distribution_id: str, seq: int, expected_hash: str, actual_hash: str):
        self.distribution_id = distribution_id
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"History chain broken for distribution {distribution_id} at seq {seq}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


class AdviceIntegrityError(AuditError):
    """Stored transmittal advice no longer matches its content hash."""

    code: str = "ADVICE_INTEGRITY"

    def __init__(self, distribution_id: str, expected_hash: str, actual_hash: str):
        self.distribution_id = distribution_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Transmittal advice for distribution {distribution_id} was altered: "
            f"expected {expected_hash}, got {actual_hash}"
        )
