"""create complaint sync tables

Revision ID: 3c1f9a2b7d41
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f9a2b7d41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'fault_sync',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('rtu_number', sa.Text(), nullable=False),
        sa.Column('tag_no', sa.Text(), nullable=False),
        sa.Column('tag_value', sa.Text()),
        sa.Column('event_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('source_type', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('fault_sync_rtu_tag_idx', 'fault_sync', ['rtu_number', 'tag_no'])

    op.create_table(
        'complaint_type',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False, unique=True),
        sa.Column('sla_hours', sa.Integer()),
        sa.Column('priority', sa.Text()),
    )

    op.create_table(
        'complaint',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('complaint_id', sa.Text(), nullable=False, unique=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('priority', sa.Text()),
        sa.Column('client_id', sa.Text()),
        sa.Column('type', sa.Text()),
        sa.Column('complaint_type_id', sa.Integer(), sa.ForeignKey('complaint_type.id'), nullable=True),
        sa.Column('sla_status', sa.Text()),
        sa.Column('is_anonymous', sa.Boolean()),
        sa.Column('assign_to_team', sa.Boolean()),
        sa.Column('submitted_on', sa.DateTime(timezone=True)),
        sa.Column('deadline', sa.DateTime(timezone=True)),
        sa.Column('contact_phone', sa.Text()),
        sa.Column('contact_name', sa.Text()),
        sa.Column('contact_email', sa.Text()),
        sa.Column('ward_id', sa.Text()),
        sa.Column('sub_zone_id', sa.Text()),
        sa.Column('submitted_by_id', sa.Text()),
        sa.Column('area', sa.Text()),
        sa.Column('address', sa.Text()),
        sa.Column('tags', sa.Text()),
        sa.Column('slms_ref', sa.Integer(), sa.ForeignKey('fault_sync.id')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'status_log',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('complaint_id', sa.Integer(), sa.ForeignKey('complaint.id'), nullable=False),
        sa.Column('user_id', sa.Text()),
        sa.Column('from_status', sa.Text()),
        sa.Column('to_status', sa.Text(), nullable=False),
        sa.Column('comment', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'system_config',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('key', sa.Text(), nullable=False, unique=True),
        sa.Column('value', sa.Text()),
        sa.Column('type', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('status_log')
    op.drop_table('complaint')
    op.drop_table('complaint_type')
    op.drop_index('fault_sync_rtu_tag_idx', table_name='fault_sync')
    op.drop_table('fault_sync')
    op.drop_table('system_config')
