"""
Document references (``distribution_kernel.domain.documents``).

Responsibility
--------------
The closed tagged union used everywhere a distribution talks about a
document: ``DocumentRef(kind, id)`` where ``kind`` is either an invoice or
an additional document.  Heterogeneous payloads coming from the portal
(``{"type": "invoice", "id": 7}``, ``{"document_type": ..., "document_id":
...}``) are normalized here once, so no other layer inspects shapes.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Two refs are equal iff kind and id match.
* ``DocumentKind.parse`` accepts only the two supported kinds.
* Ids are integers; anything else raises InvalidDocumentRefError.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping

from distribution_kernel.exceptions import (
    DuplicateDocumentError,
    InvalidDocumentKindError,
    InvalidDocumentRefError,
)


class DocumentKind(str, Enum):
    """Kinds of document a distribution can carry."""

    INVOICE = "invoice"
    ADDITIONAL_DOCUMENT = "additional_document"

    @classmethod
    def parse(cls, value: DocumentKind | str) -> DocumentKind:
        if isinstance(value, DocumentKind):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidDocumentKindError(str(value)) from None

    @property
    def label(self) -> str:
        match self:
            case DocumentKind.INVOICE:
                return "Invoice"
            case DocumentKind.ADDITIONAL_DOCUMENT:
                return "Additional Document"


def _coerce_id(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidDocumentRefError(repr(value), "id must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidDocumentRefError(repr(value), "id must be an integer") from None


@dataclass(frozen=True)
class DocumentRef:
    """A typed reference to an invoice or additional document."""

    kind: DocumentKind
    id: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", DocumentKind.parse(self.kind))
        object.__setattr__(self, "id", _coerce_id(self.id))

    def __str__(self) -> str:
        return f"{self.kind.value}#{self.id}"

    @property
    def key(self) -> tuple[str, int]:
        return (self.kind.value, self.id)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "id": self.id}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DocumentRef:
        """Build a ref from any of the payload shapes the portal sends."""
        kind = data.get("kind", data.get("type", data.get("document_type")))
        doc_id = data.get("id", data.get("document_id"))
        if kind is None:
            raise InvalidDocumentRefError(repr(dict(data)), "missing document kind")
        if doc_id is None:
            raise InvalidDocumentRefError(repr(dict(data)), "missing document id")
        return cls(kind, doc_id)


def unique_refs(
    refs: Iterable[DocumentRef],
    distribution_id: str | None = None,
) -> tuple[DocumentRef, ...]:
    """Return refs in input order, raising on the first repeated (kind, id)."""
    seen: set[DocumentRef] = set()
    ordered: list[DocumentRef] = []
    for ref in refs:
        if ref in seen:
            raise DuplicateDocumentError(distribution_id, str(ref))
        seen.add(ref)
        ordered.append(ref)
    return tuple(ordered)
