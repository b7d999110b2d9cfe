"""init ledger schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _money(name: str, nullable: bool = False, default: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(12, 2),
        nullable=nullable,
        server_default="0" if default and not nullable else None,
    )


def upgrade():
    op.create_table(
        "app_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("display_name", sa.String(length=160), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="tenant"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="uq_app_users_email"),
    )
    op.create_index("ix_app_users_email", "app_users", ["email"])

    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("property_name", sa.String(length=200), nullable=False),
        sa.Column("unit_number", sa.String(length=40), nullable=False),
        sa.Column("occupancy_status", sa.String(length=20), nullable=False, server_default="vacant"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("property_name", "unit_number", name="uq_units_property_unit"),
    )

    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=True),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("is_blacklisted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("blacklist_severity", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_tenants_user_id", "tenants", ["user_id"])

    op.create_table(
        "leases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lease_number", sa.String(length=40), nullable=False),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("units.id"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("move_out_date", sa.Date(), nullable=True),
        _money("monthly_rent", default=False),
        _money("late_fee"),
        sa.Column("grace_period_days", sa.Integer(), nullable=True),
        sa.Column("rent_due_day", sa.Integer(), nullable=True),
        _money("security_deposit"),
        sa.Column("lease_status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("lease_number", name="uq_leases_lease_number"),
    )
    op.create_index("ix_leases_unit_id", "leases", ["unit_id"])
    op.create_index("ix_leases_lease_status", "leases", ["lease_status"])

    op.create_table(
        "lease_tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lease_id", sa.Integer(), sa.ForeignKey("leases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("is_primary_tenant", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("removed_date", sa.Date(), nullable=True),
        sa.UniqueConstraint("lease_id", "tenant_id", name="uq_lease_tenants_lease_tenant"),
    )
    op.create_index("ix_lease_tenants_lease_id", "lease_tenants", ["lease_id"])
    op.create_index("ix_lease_tenants_tenant_id", "lease_tenants", ["tenant_id"])

    op.create_table(
        "rent_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lease_id", sa.Integer(), sa.ForeignKey("leases.id"), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        _money("amount_due", default=False),
        _money("utilities_charges"),
        _money("late_fee"),
        _money("amount_paid"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(length=80), nullable=True),
        sa.Column("payment_reference", sa.String(length=120), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("processed_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("lease_id", "due_date", name="uq_rent_payments_lease_due_date"),
    )
    op.create_index("ix_rent_payments_lease_id", "rent_payments", ["lease_id"])
    op.create_index("ix_rent_payments_payment_reference", "rent_payments", ["payment_reference"])
    op.create_index("ix_rent_payments_status_due", "rent_payments", ["status", "due_date"])

    op.create_table(
        "payment_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("obligation_id", sa.Integer(), sa.ForeignKey("rent_payments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("change_type", sa.String(length=40), nullable=False),
        sa.Column("old_status", sa.String(length=20), nullable=True),
        sa.Column("new_status", sa.String(length=20), nullable=True),
        _money("old_amount", nullable=True),
        _money("new_amount", nullable=True),
        sa.Column("changed_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("extra_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_payment_history_obligation_id", "payment_history", ["obligation_id"])

    op.create_table(
        "utility_charges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lease_id", sa.Integer(), sa.ForeignKey("leases.id"), nullable=False),
        sa.Column("billing_month", sa.Date(), nullable=False),
        _money("water_charges"),
        _money("electricity_charges"),
        _money("gas_charges"),
        _money("service_charges"),
        _money("garbage_charges"),
        _money("common_area_charges"),
        _money("other_charges"),
        sa.Column("other_charges_description", sa.String(length=200), nullable=True),
        sa.Column("charge_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("billed_obligation_id", sa.Integer(), sa.ForeignKey("rent_payments.id"), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("lease_id", "billing_month", name="uq_utility_charges_lease_month"),
    )
    op.create_index("ix_utility_charges_lease_id", "utility_charges", ["lease_id"])

    op.create_table(
        "payment_submissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("lease_id", sa.Integer(), sa.ForeignKey("leases.id"), nullable=False),
        _money("amount", default=False),
        sa.Column("payment_method", sa.String(length=80), nullable=False),
        sa.Column("transaction_reference", sa.String(length=120), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("submission_date", sa.DateTime(), nullable=False),
        sa.Column("submitted_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("verification_status", sa.String(length=20), nullable=False, server_default="pending"),
        _money("verified_amount", nullable=True),
        sa.Column("verified_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("verified_date", sa.DateTime(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("applied_obligation_id", sa.Integer(), sa.ForeignKey("rent_payments.id"), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_payment_submissions_tenant_id", "payment_submissions", ["tenant_id"])
    op.create_index("ix_payment_submissions_lease_id", "payment_submissions", ["lease_id"])
    op.create_index("ix_payment_submissions_transaction_reference", "payment_submissions", ["transaction_reference"])
    op.create_index("ix_payment_submissions_verification_status", "payment_submissions", ["verification_status"])

    op.create_table(
        "security_deposits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lease_id", sa.Integer(), sa.ForeignKey("leases.id"), nullable=False),
        _money("amount_collected", default=False),
        sa.Column("collection_date", sa.Date(), nullable=True),
        _money("amount_returned"),
        sa.Column("return_date", sa.Date(), nullable=True),
        _money("deductions"),
        sa.Column("deduction_itemization_json", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="held"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("lease_id", name="uq_security_deposits_lease"),
    )
    op.create_index("ix_security_deposits_lease_id", "security_deposits", ["lease_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("entity_type", sa.String(length=80), nullable=False),
        sa.Column("entity_id", sa.String(length=80), nullable=True),
        sa.Column("before_json", sa.Text(), nullable=True),
        sa.Column("after_json", sa.Text(), nullable=True),
        sa.Column("extra_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id", "action"])

    op.create_table(
        "user_notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=False),
        sa.Column("notification_type", sa.String(length=60), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_resource_type", sa.String(length=60), nullable=True),
        sa.Column("related_resource_id", sa.String(length=80), nullable=True),
        sa.Column("is_urgent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_user_notifications_user_id", "user_notifications", ["user_id"])

    op.create_table(
        "job_locks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lock_key", sa.String(length=120), nullable=False),
        sa.Column("owner", sa.String(length=120), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("lock_key", name="uq_job_locks_key"),
    )

    op.create_table(
        "cron_job_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_name", sa.String(length=80), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("records_affected", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("execution_details_json", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("execution_time", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_cron_job_log_job_name", "cron_job_log", ["job_name"])


def downgrade():
    op.drop_table("cron_job_log")
    op.drop_table("job_locks")
    op.drop_table("user_notifications")
    op.drop_table("audit_events")
    op.drop_table("security_deposits")
    op.drop_table("payment_submissions")
    op.drop_table("utility_charges")
    op.drop_table("payment_history")
    op.drop_table("rent_payments")
    op.drop_table("lease_tenants")
    op.drop_table("leases")
    op.drop_table("tenants")
    op.drop_table("units")
    op.drop_table("app_users")
