"""Initial courier schema: directory, sequences, parcels, manifests, ledger

Revision ID: c0u001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "c0u001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True):
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP"))]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")))
    return cols


def upgrade():
    # Directory
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("city", sa.String(length=100), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_branches"),
        sa.UniqueConstraint("name", name="uq_branches_name"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_branches_is_active", "branches", ["is_active"], unique=False)

    op.create_table(
        "drivers",
        sa.Column("id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("license_number", sa.String(length=64), nullable=True),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], name="fk_drivers_branch_id_branches"),
        sa.PrimaryKeyConstraint("id", name="pk_drivers"),
    )
    op.create_index("ix_drivers_branch_id", "drivers", ["branch_id"], unique=False)
    op.create_index("ix_drivers_is_active", "drivers", ["is_active"], unique=False)

    op.create_table(
        "employees",
        sa.Column("id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("job_title", sa.String(length=100), nullable=False),
        sa.Column("salary", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("driver_id", sa.String(length=50), nullable=True),
        sa.Column("hire_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], name="fk_employees_branch_id_branches"),
        sa.ForeignKeyConstraint(["driver_id"], ["drivers.id"], name="fk_employees_driver_id_drivers"),
        sa.PrimaryKeyConstraint("id", name="pk_employees"),
    )
    op.create_index("ix_employees_branch_id", "employees", ["branch_id"], unique=False)

    # Sequence counters (tracking numbers, manifest ids)
    op.create_table(
        "sequence_counters",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_key", sa.String(length=64), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("prefix", sa.String(length=10), nullable=False),
        sa.Column("next_value", sa.Integer(), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("next_value >= 1", name="ck_sequence_counters_next_value_positive"),
        sa.PrimaryKeyConstraint("id", name="pk_sequence_counters"),
        sa.UniqueConstraint("tenant_key", "kind", name="uq_sequence_counters_tenant_kind"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sequence_counters_tenant_key", "sequence_counters", ["tenant_key"], unique=False)

    # Parcels
    op.create_table(
        "parcels",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_key", sa.String(length=64), nullable=False),
        sa.Column("tracking_number", sa.String(length=64), nullable=False),
        sa.Column("sender_name", sa.String(length=120), nullable=False),
        sa.Column("sender_phone", sa.String(length=32), nullable=True),
        sa.Column("receiver_name", sa.String(length=120), nullable=False),
        sa.Column("receiver_phone", sa.String(length=32), nullable=True),
        sa.Column("receiver_city", sa.String(length=100), nullable=False),
        sa.Column("receiver_district", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("origin_branch_id", sa.Integer(), nullable=False),
        sa.Column("destination_branch_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("shipping_cost", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("shipping_tax", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("payment_type", sa.String(length=16), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False),
        sa.Column("driver_commission", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("assigned_driver_id", sa.String(length=50), nullable=True),
        sa.Column("added_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.CheckConstraint("shipping_cost >= 0", name="ck_parcels_shipping_cost_non_negative"),
        sa.CheckConstraint("shipping_tax >= 0 AND shipping_tax <= shipping_cost", name="ck_parcels_shipping_tax_in_range"),
        sa.ForeignKeyConstraint(["origin_branch_id"], ["branches.id"], name="fk_parcels_origin_branch_id_branches"),
        sa.ForeignKeyConstraint(["destination_branch_id"], ["branches.id"], name="fk_parcels_destination_branch_id_branches"),
        sa.ForeignKeyConstraint(["assigned_driver_id"], ["drivers.id"], name="fk_parcels_assigned_driver_id_drivers"),
        sa.PrimaryKeyConstraint("id", name="pk_parcels"),
        sa.UniqueConstraint("tracking_number", name="uq_parcels_tracking_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_parcels_tenant_key", "parcels", ["tenant_key"], unique=False)
    op.create_index("ix_parcels_origin_branch_id", "parcels", ["origin_branch_id"], unique=False)
    op.create_index("ix_parcels_destination_branch_id", "parcels", ["destination_branch_id"], unique=False)
    op.create_index("ix_parcels_status", "parcels", ["status"], unique=False)
    op.create_index("ix_parcels_assigned_driver_id", "parcels", ["assigned_driver_id"], unique=False)
    op.create_index("ix_parcels_origin_status_created", "parcels", ["origin_branch_id", "status", "created_at"], unique=False)

    op.create_table(
        "parcel_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parcel_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["parcel_id"], ["parcels.id"], name="fk_parcel_logs_parcel_id_parcels"),
        sa.PrimaryKeyConstraint("id", name="pk_parcel_logs"),
        sa.UniqueConstraint("parcel_id", "status", name="uq_parcel_logs_parcel_status"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_parcel_logs_parcel_id", "parcel_logs", ["parcel_id"], unique=False)

    # Manifests
    op.create_table(
        "manifests",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("tenant_key", sa.String(length=64), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("driver_id", sa.String(length=50), nullable=False),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("printed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("settled_by_user_id", sa.Integer(), nullable=True),
        sa.Column("total_shipping_cost", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("total_tax", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("total_received", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("driver_commission_total", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("office_revenue_total", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("rounding_residual", sa.Numeric(precision=14, scale=2), nullable=True),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], name="fk_manifests_branch_id_branches"),
        sa.ForeignKeyConstraint(["driver_id"], ["drivers.id"], name="fk_manifests_driver_id_drivers"),
        sa.PrimaryKeyConstraint("id", name="pk_manifests"),
    )
    op.create_index("ix_manifests_tenant_key", "manifests", ["tenant_key"], unique=False)
    op.create_index("ix_manifests_branch_id", "manifests", ["branch_id"], unique=False)
    op.create_index("ix_manifests_driver_id", "manifests", ["driver_id"], unique=False)
    op.create_index("ix_manifests_status", "manifests", ["status"], unique=False)
    op.create_index("ix_manifests_branch_status_created", "manifests", ["branch_id", "status", "created_at"], unique=False)

    op.create_table(
        "manifest_parcels",
        sa.Column("manifest_id", sa.String(length=64), nullable=False),
        sa.Column("parcel_id", sa.Integer(), nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["manifest_id"], ["manifests.id"], name="fk_manifest_parcels_manifest_id_manifests"),
        sa.ForeignKeyConstraint(["parcel_id"], ["parcels.id"], name="fk_manifest_parcels_parcel_id_parcels"),
        sa.PrimaryKeyConstraint("manifest_id", "parcel_id", name="pk_manifest_parcels"),
    )
    op.create_index("ix_manifest_parcels_parcel_id", "manifest_parcels", ["parcel_id"], unique=False)

    # Payroll and ledger
    op.create_table(
        "payslips",
        sa.Column("id", sa.String(length=50), nullable=False),
        sa.Column("employee_id", sa.String(length=50), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("pay_period_start", sa.Date(), nullable=False),
        sa.Column("pay_period_end", sa.Date(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("base_salary", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("bonuses", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("deductions", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("net_salary", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("generated_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint("net_salary >= 0", name="ck_payslips_net_salary_non_negative"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], name="fk_payslips_employee_id_employees"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], name="fk_payslips_branch_id_branches"),
        sa.PrimaryKeyConstraint("id", name="pk_payslips"),
    )
    op.create_index("ix_payslips_employee_id", "payslips", ["employee_id"], unique=False)
    op.create_index("ix_payslips_branch_id", "payslips", ["branch_id"], unique=False)

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("expense_type", sa.String(length=24), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("date_spent", sa.Date(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("payslip_id", sa.String(length=50), nullable=True),
        sa.Column("manifest_id", sa.String(length=64), nullable=True),
        sa.Column("added_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], name="fk_expenses_branch_id_branches"),
        sa.ForeignKeyConstraint(["payslip_id"], ["payslips.id"], name="fk_expenses_payslip_id_payslips"),
        sa.ForeignKeyConstraint(["manifest_id"], ["manifests.id"], name="fk_expenses_manifest_id_manifests"),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_expenses_expense_type", "expenses", ["expense_type"], unique=False)
    op.create_index("ix_expenses_branch_id", "expenses", ["branch_id"], unique=False)
    op.create_index("ix_expenses_payslip_id", "expenses", ["payslip_id"], unique=False)
    op.create_index("ix_expenses_manifest_id", "expenses", ["manifest_id"], unique=False)

    op.create_table(
        "debts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parcel_id", sa.Integer(), nullable=True),
        sa.Column("debtor_type", sa.String(length=16), nullable=False),
        sa.Column("debtor_id", sa.String(length=64), nullable=False),
        sa.Column("debtor_name", sa.String(length=120), nullable=False),
        sa.Column("amount", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("movement_type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("initiating_branch_id", sa.Integer(), nullable=False),
        sa.Column("initiator_user_id", sa.Integer(), nullable=True),
        sa.Column("settled_by_user_id", sa.Integer(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_debts_amount_positive"),
        sa.ForeignKeyConstraint(["parcel_id"], ["parcels.id"], name="fk_debts_parcel_id_parcels"),
        sa.ForeignKeyConstraint(["initiating_branch_id"], ["branches.id"], name="fk_debts_initiating_branch_id_branches"),
        sa.PrimaryKeyConstraint("id", name="pk_debts"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_debts_parcel_id", "debts", ["parcel_id"], unique=False)
    op.create_index("ix_debts_status", "debts", ["status"], unique=False)
    op.create_index("ix_debts_branch_status", "debts", ["initiating_branch_id", "status"], unique=False)

    op.create_table(
        "cash_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("parcel_id", sa.Integer(), nullable=True),
        sa.Column("manifest_id", sa.String(length=64), nullable=True),
        sa.Column("payslip_id", sa.String(length=50), nullable=True),
        sa.Column("expense_id", sa.Integer(), nullable=True),
        sa.Column("debt_id", sa.Integer(), nullable=True),
        sa.Column("reverses_transaction_id", sa.Integer(), nullable=True),
        sa.Column("added_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint("amount > 0", name="ck_cash_transactions_amount_positive"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], name="fk_cash_transactions_branch_id_branches"),
        sa.ForeignKeyConstraint(["parcel_id"], ["parcels.id"], name="fk_cash_transactions_parcel_id_parcels"),
        sa.ForeignKeyConstraint(["manifest_id"], ["manifests.id"], name="fk_cash_transactions_manifest_id_manifests"),
        sa.ForeignKeyConstraint(["payslip_id"], ["payslips.id"], name="fk_cash_transactions_payslip_id_payslips"),
        sa.ForeignKeyConstraint(["expense_id"], ["expenses.id"], name="fk_cash_transactions_expense_id_expenses"),
        sa.ForeignKeyConstraint(["debt_id"], ["debts.id"], name="fk_cash_transactions_debt_id_debts"),
        sa.ForeignKeyConstraint(
            ["reverses_transaction_id"],
            ["cash_transactions.id"],
            name="fk_cash_transactions_reverses_transaction_id_cash_transactions",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_cash_transactions"),
        sa.UniqueConstraint("reverses_transaction_id", name="uq_cash_transactions_reverses"),
        sqlite_autoincrement=True,
    )
    for column in ("branch_id", "event_type", "parcel_id", "manifest_id", "payslip_id", "expense_id", "debt_id"):
        op.create_index(f"ix_cash_transactions_{column}", "cash_transactions", [column], unique=False)
    op.create_index("ix_cash_transactions_branch_date", "cash_transactions", ["branch_id", "transaction_date"], unique=False)


def downgrade():
    op.drop_table("cash_transactions")
    op.drop_table("debts")
    op.drop_table("expenses")
    op.drop_table("payslips")
    op.drop_table("manifest_parcels")
    op.drop_table("manifests")
    op.drop_table("parcel_logs")
    op.drop_table("parcels")
    op.drop_table("sequence_counters")
    op.drop_table("employees")
    op.drop_table("drivers")
    op.drop_table("branches")
