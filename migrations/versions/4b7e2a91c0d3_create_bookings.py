"""create bookings

Revision ID: 4b7e2a91c0d3
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b7e2a91c0d3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'bookings',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=False),
        sa.Column('area', sa.String(length=120), nullable=False),
        sa.Column('county', sa.String(length=60), nullable=False),
        sa.Column('service_type', sa.String(length=20), nullable=False),
        sa.Column('item_type', sa.String(length=60), nullable=False),
        sa.Column('item_count', sa.Integer(), nullable=False),
        sa.Column('total', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('date', sa.Date(), nullable=True),
        sa.Column('time_slot', sa.String(length=20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('mpesa_checkout_request_id', sa.String(length=120), nullable=True),
        sa.Column('mpesa_merchant_request_id', sa.String(length=120), nullable=True),
        sa.Column('mpesa_receipt_number', sa.String(length=60), nullable=True),
        sa.Column('mpesa_amount', sa.String(length=30), nullable=True),
        sa.Column('mpesa_transaction_date', sa.String(length=30), nullable=True),
        sa.Column('mpesa_result_code', sa.Integer(), nullable=True),
        sa.Column('mpesa_result_desc', sa.String(length=255), nullable=True),
        sa.Column('booking_status', sa.String(length=20), nullable=False),
        sa.Column('admin_notes', sa.Text(), nullable=False),
        sa.Column('created_at', sa.String(length=40), nullable=False),
        sa.Column('updated_at', sa.String(length=40), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_bookings_email'), ['email'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_payment_intent_id'), ['payment_intent_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_mpesa_checkout_request_id'), ['mpesa_checkout_request_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_booking_status'), ['booking_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_created_at'), ['created_at'], unique=False)


def downgrade():
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_bookings_created_at'))
        batch_op.drop_index(batch_op.f('ix_bookings_booking_status'))
        batch_op.drop_index(batch_op.f('ix_bookings_mpesa_checkout_request_id'))
        batch_op.drop_index(batch_op.f('ix_bookings_payment_intent_id'))
        batch_op.drop_index(batch_op.f('ix_bookings_email'))

    op.drop_table('bookings')
