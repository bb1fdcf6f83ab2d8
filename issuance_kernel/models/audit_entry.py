"""
Module: issuance_kernel.models.audit_entry
Responsibility: ORM persistence for the issuance audit log.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/records.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listeners in db/immutability.py).
    - ``seq`` is unique and strictly increasing in insertion order; queries
      order by it so the log reads oldest first.

Audit relevance:
    Durable counterpart to the browser-storage audit log.  Advisory, not
    authoritative: it records what this client did, not what the server
    accepted.
"""

from datetime import datetime

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from issuance_kernel.db.base import Base
from issuance_kernel.domain.records import AuditEntry


class AuditEntryModel(Base):
    """One row per appended AuditEntry."""

    __tablename__ = "issuance_audit_entries"

    __table_args__ = (
        Index("idx_issuance_audit_item", "item_id"),
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    issued_to: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    issued_by: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    previous_status: Mapped[str] = mapped_column(String(20), nullable=False)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    returned_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    returned_by_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    return_date: Mapped[datetime | None] = mapped_column(nullable=True)
    issue_date: Mapped[datetime | None] = mapped_column(nullable=True)
    expected_return_date: Mapped[datetime | None] = mapped_column(nullable=True)

    @classmethod
    def from_entry(cls, entry: AuditEntry, seq: int) -> "AuditEntryModel":
        return cls(
            seq=seq,
            action=entry.action,
            item_id=entry.item_id,
            item_name=entry.item_name,
            issued_to=entry.issued_to,
            issued_by=entry.issued_by,
            notes=entry.notes,
            previous_status=entry.previous_status,
            new_status=entry.new_status,
            returned_by=entry.returned_by,
            returned_by_id=entry.returned_by_id,
            return_date=entry.return_date,
            issue_date=entry.issue_date,
            expected_return_date=entry.expected_return_date,
        )

    def to_entry(self) -> AuditEntry:
        # SQLite drops tzinfo; round-trip through the dict form to restore UTC.
        return AuditEntry.from_dict({
            "action": self.action,
            "itemId": self.item_id,
            "itemName": self.item_name,
            "issuedTo": self.issued_to,
            "issuedBy": self.issued_by,
            "notes": self.notes,
            "previousStatus": self.previous_status,
            "newStatus": self.new_status,
            "returnedBy": self.returned_by,
            "returnedById": self.returned_by_id,
            "returnDate": self.return_date,
            "issueDate": self.issue_date,
            "expectedReturnDate": self.expected_return_date,
        })

    def __repr__(self) -> str:
        return f"<AuditEntryModel #{self.seq} {self.action} item={self.item_id}>"
