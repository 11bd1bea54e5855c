from __future__ import annotations

from ..extensions import db
from courier.time_utils import to_utc_z


def _money(value):
    return str(value) if value is not None else None


class Parcel(db.Model):
    """
    A shipment accepted at an origin branch.

    LIFECYCLE (see services/lifecycle_service.py):
        PROCESSING -> IN_TRANSIT -> DELIVERED -> PICKED_UP
        PROCESSING | IN_TRANSIT -> CANCELLED

    INVARIANTS:
    - tracking_number is issued by the sequence allocator and never changes
    - shipping_tax <= shipping_cost
    - driver_commission is derived from cost/tax, never written by clients
    """
    __tablename__ = "parcels"
    __table_args__ = (
        db.UniqueConstraint("tracking_number", name="uq_parcels_tracking_number"),
        db.CheckConstraint("shipping_cost >= 0", name="shipping_cost_non_negative"),
        db.CheckConstraint("shipping_tax >= 0 AND shipping_tax <= shipping_cost", name="shipping_tax_in_range"),
        # Branch-scoped queries by status and date
        db.Index("ix_parcels_origin_status_created", "origin_branch_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_key = db.Column(db.String(64), nullable=False, index=True)
    tracking_number = db.Column(db.String(64), nullable=False)

    sender_name = db.Column(db.String(120), nullable=False)
    sender_phone = db.Column(db.String(32), nullable=True)
    receiver_name = db.Column(db.String(120), nullable=False)
    receiver_phone = db.Column(db.String(32), nullable=True)
    receiver_city = db.Column(db.String(100), nullable=False)
    receiver_district = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    origin_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    destination_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="PROCESSING", index=True)

    shipping_cost = db.Column(db.Numeric(14, 2), nullable=False)
    shipping_tax = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    payment_type = db.Column(db.String(16), nullable=False)  # PREPAID, COD, POSTPAID
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    driver_commission = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    assigned_driver_id = db.Column(db.String(50), db.ForeignKey("drivers.id"), nullable=True, index=True)
    added_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    origin_branch = db.relationship("Branch", foreign_keys=[origin_branch_id])
    destination_branch = db.relationship("Branch", foreign_keys=[destination_branch_id])
    assigned_driver = db.relationship("Driver", backref=db.backref("parcels", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Parcel id={self.id} tracking={self.tracking_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_key": self.tenant_key,
            "tracking_number": self.tracking_number,
            "sender_name": self.sender_name,
            "sender_phone": self.sender_phone,
            "receiver_name": self.receiver_name,
            "receiver_phone": self.receiver_phone,
            "receiver_city": self.receiver_city,
            "receiver_district": self.receiver_district,
            "notes": self.notes,
            "origin_branch_id": self.origin_branch_id,
            "destination_branch_id": self.destination_branch_id,
            "status": self.status,
            "shipping_cost": _money(self.shipping_cost),
            "shipping_tax": _money(self.shipping_tax),
            "payment_type": self.payment_type,
            "is_paid": self.is_paid,
            "driver_commission": _money(self.driver_commission),
            "assigned_driver_id": self.assigned_driver_id,
            "added_by_user_id": self.added_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class ParcelLog(db.Model):
    """
    Append-only audit trail of parcel status changes.

    Exactly one row per status a parcel has entered. The unique
    (parcel_id, status) constraint makes a duplicated transition fail at the
    database even if two requests pass the state check concurrently.
    Rows are never updated or deleted.
    """
    __tablename__ = "parcel_logs"
    __table_args__ = (
        db.UniqueConstraint("parcel_id", "status", name="uq_parcel_logs_parcel_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parcel_id = db.Column(db.Integer, db.ForeignKey("parcels.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False)
    note = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_by_user_id = db.Column(db.Integer, nullable=True)

    parcel = db.relationship("Parcel", backref=db.backref("logs", lazy=True, order_by="ParcelLog.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parcel_id": self.parcel_id,
            "status": self.status,
            "note": self.note,
            "timestamp": to_utc_z(self.timestamp),
            "updated_by_user_id": self.updated_by_user_id,
        }
