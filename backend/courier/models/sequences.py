from __future__ import annotations

from ..extensions import db
from courier.time_utils import to_utc_z


class SequenceCounter(db.Model):
    """
    Tenant-scoped issuance counter for tracking numbers and manifest ids.

    One row per (tenant_key, kind). next_value is the value the NEXT issuance
    returns; it only ever moves forward. Rows are provisioned once and never
    deleted.
    """
    __tablename__ = "sequence_counters"
    __table_args__ = (
        db.UniqueConstraint("tenant_key", "kind", name="uq_sequence_counters_tenant_kind"),
        db.CheckConstraint("next_value >= 1", name="next_value_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_key = db.Column(db.String(64), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)  # TRACKING, MANIFEST
    prefix = db.Column(db.String(10), nullable=False, default="")
    next_value = db.Column(db.Integer, nullable=False, default=1)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.tenant_key}/{self.kind} next={self.prefix}{self.next_value}>"

    def to_dict(self) -> dict:
        return {
            "tenant_key": self.tenant_key,
            "kind": self.kind,
            "prefix": self.prefix,
            "next_value": self.next_value,
            "last_updated": to_utc_z(self.last_updated),
        }
