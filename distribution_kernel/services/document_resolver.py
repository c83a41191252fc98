"""
DocumentResolver -- turns heterogeneous document references into DocumentRefs.

Responsibility:
    Normalizes whatever the caller passes (a DocumentRef, a
    ``(kind, id)`` pair, or a portal payload dict) into a ``DocumentRef``,
    confirms with the Document Store that the document exists, rejects
    duplicates, and derives location-mismatch warnings.

Architecture position:
    Kernel > Services.  Holds no session; the Document Store collaborator
    is the authority on existence.

Failure modes:
    - DocumentNotFoundError when the store cannot resolve a reference.
    - DuplicateDocumentError when a ref repeats in the input or is already
      attached to the distribution.
    - InvalidDocumentKindError for unsupported kinds.
    - InvalidDocumentRefError for unreadable ids or reference shapes.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Union

from distribution_kernel.domain.documents import DocumentKind, DocumentRef, unique_refs
from distribution_kernel.domain.dtos import DistributionWarning
from distribution_kernel.domain.ports import DocumentInfo, DocumentStore
from distribution_kernel.exceptions import (
    DocumentNotFoundError,
    DuplicateDocumentError,
    InvalidDocumentRefError,
)
from distribution_kernel.logging_config import get_logger

logger = get_logger("services.document_resolver")

RefLike = Union[DocumentRef, tuple, Mapping[str, Any]]

LOCATION_MISMATCH = "location_mismatch"


def to_ref(value: RefLike) -> DocumentRef:
    """Coerce a caller-supplied reference into a DocumentRef."""
    match value:
        case DocumentRef():
            return value
        case (kind, doc_id):
            return DocumentRef(kind, doc_id)
        case Mapping():
            return DocumentRef.from_dict(value)
        case _:
            raise InvalidDocumentRefError(
                repr(value), "expected a ref, a (kind, id) pair or a mapping"
            )


class DocumentResolver:
    """Resolves references against the Document Store."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def resolve(self, kind: DocumentKind | str, document_id: int) -> DocumentInfo:
        ref = DocumentRef(kind, document_id)
        return self.resolve_ref(ref)

    def resolve_ref(self, ref: DocumentRef) -> DocumentInfo:
        info = self._store.resolve(ref.kind, ref.id)
        if info is None:
            logger.info("document_not_found", extra={"document_ref": str(ref)})
            raise DocumentNotFoundError(str(ref))
        return info

    def resolve_new(
        self,
        values: Iterable[RefLike],
        attached: Iterable[DocumentRef] = (),
        distribution_id: str | None = None,
    ) -> tuple[DocumentInfo, ...]:
        """
        Resolve refs about to be attached.

        Preconditions:
            - ``attached`` is the distribution's current attachment set.

        Postconditions:
            - Returns one DocumentInfo per input ref, in input order.
        """
        refs = unique_refs((to_ref(v) for v in values), distribution_id)
        already = set(attached)
        for ref in refs:
            if ref in already:
                raise DuplicateDocumentError(distribution_id, str(ref))
        return tuple(self.resolve_ref(ref) for ref in refs)

    @staticmethod
    def location_warnings(
        infos: Iterable[DocumentInfo],
        expected_location: str,
    ) -> tuple[DistributionWarning, ...]:
        """Warn for documents whose current location is not the origin's."""
        warnings = []
        for info in infos:
            if info.location_code and info.location_code != expected_location:
                warnings.append(
                    DistributionWarning(
                        type=LOCATION_MISMATCH,
                        message=(
                            f"{info.ref.kind.label} {info.number} is at "
                            f"{info.location_code}, not {expected_location}"
                        ),
                        document_ref=info.ref,
                        expected_location=expected_location,
                        actual_location=info.location_code,
                    )
                )
        return tuple(warnings)
