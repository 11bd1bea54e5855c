from __future__ import annotations

from ..extensions import db
from courier.time_utils import to_utc_z


class Manifest(db.Model):
    """
    A driver run: a batch of parcels handed to one driver and settled together.

    LIFECYCLE:
        PROCESSING -> PRINTED -> IN_TRANSIT -> COMPLETED
        any non-terminal -> CANCELLED

    The settlement totals are snapshotted on the row when the manifest is
    completed so later reads do not depend on parcel edits.
    """
    __tablename__ = "manifests"
    __table_args__ = (
        db.Index("ix_manifests_branch_status_created", "branch_id", "status", "created_at"),
    )

    # Sequence-issued id (e.g., "MAN42")
    id = db.Column(db.String(64), primary_key=True)
    tenant_key = db.Column(db.String(64), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    driver_id = db.Column(db.String(50), db.ForeignKey("drivers.id"), nullable=False, index=True)
    city = db.Column(db.String(100), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PROCESSING", index=True)

    printed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    settled_by_user_id = db.Column(db.Integer, nullable=True)

    # Settlement snapshot (null until COMPLETED)
    total_shipping_cost = db.Column(db.Numeric(14, 2), nullable=True)
    total_tax = db.Column(db.Numeric(14, 2), nullable=True)
    total_received = db.Column(db.Numeric(14, 2), nullable=True)
    driver_commission_total = db.Column(db.Numeric(14, 2), nullable=True)
    office_revenue_total = db.Column(db.Numeric(14, 2), nullable=True)
    rounding_residual = db.Column(db.Numeric(14, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch")
    driver = db.relationship("Driver", backref=db.backref("manifests", lazy=True))
    parcels = db.relationship("Parcel", secondary="manifest_parcels", viewonly=True, order_by="Parcel.id")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Manifest id={self.id!r} status={self.status}>"

    def to_dict(self, include_parcels: bool = False) -> dict:
        def money(value):
            return str(value) if value is not None else None

        data = {
            "id": self.id,
            "tenant_key": self.tenant_key,
            "branch_id": self.branch_id,
            "driver_id": self.driver_id,
            "city": self.city,
            "status": self.status,
            "printed_at": to_utc_z(self.printed_at),
            "dispatched_at": to_utc_z(self.dispatched_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_by_user_id": self.created_by_user_id,
            "settled_by_user_id": self.settled_by_user_id,
            "total_shipping_cost": money(self.total_shipping_cost),
            "total_tax": money(self.total_tax),
            "total_received": money(self.total_received),
            "driver_commission_total": money(self.driver_commission_total),
            "office_revenue_total": money(self.office_revenue_total),
            "rounding_residual": money(self.rounding_residual),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_parcels:
            data["parcels"] = [p.to_dict() for p in self.parcels]
        return data


class ManifestParcel(db.Model):
    __tablename__ = "manifest_parcels"

    manifest_id = db.Column(db.String(64), db.ForeignKey("manifests.id"), primary_key=True)
    parcel_id = db.Column(db.Integer, db.ForeignKey("parcels.id"), primary_key=True, index=True)
    added_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
