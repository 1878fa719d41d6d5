"""Create wallet ledger and peer-to-peer loan tables

Revision ID: 20261018_1200_wallets_loans
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_1200_wallets_loans'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ============================================================
    # Wallets
    # ============================================================
    op.create_table('wallets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('balance', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0.00'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint('balance >= 0', name='ck_wallets_balance_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'currency', name='uq_wallets_user_currency')
    )
    op.create_index(op.f('ix_wallets_id'), 'wallets', ['id'], unique=False)
    op.create_index(op.f('ix_wallets_user_id'), 'wallets', ['user_id'], unique=False)

    # ============================================================
    # Wallet Journal
    # ============================================================
    op.create_table('wallet_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('wallet_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('transaction_type', sa.Enum('CREDIT', 'DEBIT', name='transactiontype'), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('balance_before', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('balance_after', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('reference_type', sa.Enum(
            'WALLET_TOPUP', 'WITHDRAWAL', 'LOAN_FUNDING', 'LOAN_DISBURSEMENT',
            'FUNDING_FEE', 'LOAN_REPAYMENT', 'REPAYMENT_FEE', name='referencetype'
        ), nullable=True),
        sa.Column('reference_id', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_wallet_transactions_amount_positive'),
        sa.CheckConstraint('balance_after >= 0', name='ck_wallet_transactions_balance_after'),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_wallet_transactions_id'), 'wallet_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_wallet_id'), 'wallet_transactions', ['wallet_id'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_user_id'), 'wallet_transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_reference_type'), 'wallet_transactions', ['reference_type'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_reference_id'), 'wallet_transactions', ['reference_id'], unique=False)

    # ============================================================
    # Loan Requests
    # ============================================================
    op.create_table('loan_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('borrower_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('purpose', sa.Enum(
            'EDUCATION', 'MEDICAL', 'RENT', 'EMERGENCY', 'TEXTBOOKS', 'ASSISTIVE_DEVICES', 'OTHER',
            name='loanpurpose'
        ), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('interest_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('tenure_days', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'FUNDED', 'COMPLETED', 'DEFAULTED', 'CANCELLED', name='loanstatus'), nullable=False),
        sa.Column('total_funded', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0.00'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('funded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_loan_requests_amount_positive'),
        sa.CheckConstraint('total_funded >= 0', name='ck_loan_requests_total_funded_non_negative'),
        sa.CheckConstraint('total_funded <= amount', name='ck_loan_requests_not_overfunded'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_loan_requests_id'), 'loan_requests', ['id'], unique=False)
    op.create_index(op.f('ix_loan_requests_borrower_id'), 'loan_requests', ['borrower_id'], unique=False)
    op.create_index(op.f('ix_loan_requests_status'), 'loan_requests', ['status'], unique=False)

    # ============================================================
    # Loan Fundings
    # ============================================================
    op.create_table('loan_fundings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('lender_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('idempotency_key', sa.String(length=100), nullable=True),
        sa.Column('funded_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_loan_fundings_amount_positive'),
        sa.ForeignKeyConstraint(['loan_id'], ['loan_requests.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key')
    )
    op.create_index(op.f('ix_loan_fundings_id'), 'loan_fundings', ['id'], unique=False)
    op.create_index(op.f('ix_loan_fundings_loan_id'), 'loan_fundings', ['loan_id'], unique=False)
    op.create_index(op.f('ix_loan_fundings_lender_id'), 'loan_fundings', ['lender_id'], unique=False)

    # ============================================================
    # Loan Repayments
    # ============================================================
    op.create_table('loan_repayments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('borrower_id', sa.String(length=64), nullable=False),
        sa.Column('principal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('interest_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('repayment_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('platform_fee', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('platform_fee_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('net_amount_to_lender', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=100), nullable=True),
        sa.Column('repaid_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['loan_id'], ['loan_requests.id'], ),
        sa.ForeignKeyConstraint(['transaction_id'], ['wallet_transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('loan_id'),
        sa.UniqueConstraint('idempotency_key')
    )
    op.create_index(op.f('ix_loan_repayments_id'), 'loan_repayments', ['id'], unique=False)
    op.create_index(op.f('ix_loan_repayments_borrower_id'), 'loan_repayments', ['borrower_id'], unique=False)

    # ============================================================
    # Loan Documents
    # ============================================================
    op.create_table('loan_agreements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('borrower_id', sa.String(length=64), nullable=False),
        sa.Column('lender_id', sa.String(length=64), nullable=True),
        sa.Column('agreement_type', sa.Enum('LENDING_PROOF', 'LOAN_CLOSURE', name='agreementtype'), nullable=False),
        sa.Column('agreement_data', sa.JSON(), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'ACTIVE', 'COMPLETED', name='agreementstatus'), nullable=False),
        sa.Column('signed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['loan_id'], ['loan_requests.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_loan_agreements_id'), 'loan_agreements', ['id'], unique=False)
    op.create_index(op.f('ix_loan_agreements_loan_id'), 'loan_agreements', ['loan_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_loan_agreements_loan_id'), table_name='loan_agreements')
    op.drop_index(op.f('ix_loan_agreements_id'), table_name='loan_agreements')
    op.drop_table('loan_agreements')

    op.drop_index(op.f('ix_loan_repayments_borrower_id'), table_name='loan_repayments')
    op.drop_index(op.f('ix_loan_repayments_id'), table_name='loan_repayments')
    op.drop_table('loan_repayments')

    op.drop_index(op.f('ix_loan_fundings_lender_id'), table_name='loan_fundings')
    op.drop_index(op.f('ix_loan_fundings_loan_id'), table_name='loan_fundings')
    op.drop_index(op.f('ix_loan_fundings_id'), table_name='loan_fundings')
    op.drop_table('loan_fundings')

    op.drop_index(op.f('ix_loan_requests_status'), table_name='loan_requests')
    op.drop_index(op.f('ix_loan_requests_borrower_id'), table_name='loan_requests')
    op.drop_index(op.f('ix_loan_requests_id'), table_name='loan_requests')
    op.drop_table('loan_requests')

    op.drop_index(op.f('ix_wallet_transactions_reference_id'), table_name='wallet_transactions')
    op.drop_index(op.f('ix_wallet_transactions_reference_type'), table_name='wallet_transactions')
    op.drop_index(op.f('ix_wallet_transactions_user_id'), table_name='wallet_transactions')
    op.drop_index(op.f('ix_wallet_transactions_wallet_id'), table_name='wallet_transactions')
    op.drop_index(op.f('ix_wallet_transactions_id'), table_name='wallet_transactions')
    op.drop_table('wallet_transactions')

    op.drop_index(op.f('ix_wallets_user_id'), table_name='wallets')
    op.drop_index(op.f('ix_wallets_id'), table_name='wallets')
    op.drop_table('wallets')

    # Drop enums
    op.execute("DROP TYPE IF EXISTS agreementstatus")
    op.execute("DROP TYPE IF EXISTS agreementtype")
    op.execute("DROP TYPE IF EXISTS loanstatus")
    op.execute("DROP TYPE IF EXISTS loanpurpose")
    op.execute("DROP TYPE IF EXISTS referencetype")
    op.execute("DROP TYPE IF EXISTS transactiontype")
