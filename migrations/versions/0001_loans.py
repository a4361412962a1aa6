"""Create loans, loan_investments and loan_state_transitions tables"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_loans"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "loans",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("borrower_id", sa.String(length=100), nullable=False),
        sa.Column("principal_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("rate", sa.Numeric(10, 4), nullable=False),
        sa.Column("roi", sa.Numeric(10, 4), nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.Column(
            "total_invested_amount",
            sa.Numeric(18, 2),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("agreement_letter_url", sa.String(length=2048), nullable=True),
        sa.Column("field_validator_id", sa.String(length=100), nullable=True),
        sa.Column("proof_image_url", sa.String(length=2048), nullable=True),
        sa.Column("approval_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("field_officer_id", sa.String(length=100), nullable=True),
        sa.Column("signed_agreement_letter_url", sa.String(length=2048), nullable=True),
        sa.Column("disbursement_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
        sa.CheckConstraint("principal_amount > 0", name="ck_loans_principal_positive"),
        sa.CheckConstraint("rate > 0", name="ck_loans_rate_positive"),
        sa.CheckConstraint("roi > 0", name="ck_loans_roi_positive"),
        sa.CheckConstraint("total_invested_amount >= 0", name="ck_loans_total_invested_nonneg"),
        sa.CheckConstraint(
            "total_invested_amount <= principal_amount",
            name="ck_loans_total_invested_within_principal",
        ),
        sa.CheckConstraint("version >= 1", name="ck_loans_version_positive"),
        sa.CheckConstraint(
            "state IN ('initial', 'proposed', 'approved', 'invested', 'disbursed')",
            name="ck_loans_state",
        ),
    )
    op.create_index("ix_loans_borrower_id", "loans", ["borrower_id"])
    op.create_index("ix_loans_state", "loans", ["state"])

    op.create_table(
        "loan_investments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "loan_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("loans.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("investor_id", sa.String(length=100), nullable=False),
        sa.Column("investor_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_loan_investments_amount_positive"),
    )
    op.create_index("ix_loan_investments_loan_id", "loan_investments", ["loan_id"])

    op.create_table(
        "loan_state_transitions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "loan_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("loans.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("previous_state", sa.String(length=20), nullable=False),
        sa.Column("event", sa.String(length=30), nullable=False),
        sa.Column("next_state", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_loan_state_transitions_loan_id", "loan_state_transitions", ["loan_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_loan_state_transitions_loan_id", table_name="loan_state_transitions")
    op.drop_table("loan_state_transitions")
    op.drop_index("ix_loan_investments_loan_id", table_name="loan_investments")
    op.drop_table("loan_investments")
    op.drop_index("ix_loans_state", table_name="loans")
    op.drop_index("ix_loans_borrower_id", table_name="loans")
    op.drop_table("loans")
