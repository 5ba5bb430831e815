"""create coupon tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """마이그레이션 적용 (업그레이드)"""
    # Users 테이블 (인증 서비스와 공유하는 계정 정보)
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('role', sa.String(50), nullable=False, server_default='customer'),
        sa.Column('status', sa.String(50), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint("role IN ('customer', 'admin')", name=op.f('ck_users_check_user_role')),
        sa.CheckConstraint(
            "status IN ('active', 'suspended', 'deleted')", name=op.f('ck_users_check_user_status')
        ),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_status'), 'users', ['status'])

    # Coupons 테이블
    op.create_table(
        'coupons',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('discount_type', sa.String(20), nullable=False),
        sa.Column('discount_value', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('min_order_value', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('max_discount_amount', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('usage_limit_total', sa.Integer(), nullable=True),
        sa.Column('usage_limit_per_user', sa.Integer(), nullable=True),
        sa.Column('valid_from', sa.DateTime(), nullable=False),
        sa.Column('valid_until', sa.DateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('category_ids', sa.JSON(), nullable=True),
        sa.Column('retired_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('code', name=op.f('uq_coupons_code')),
        sa.CheckConstraint('discount_value > 0', name=op.f('ck_coupons_check_discount_value_positive')),
        sa.CheckConstraint('valid_until > valid_from', name=op.f('ck_coupons_check_valid_date_range')),
        sa.CheckConstraint(
            'usage_limit_total IS NULL OR usage_limit_total >= 1',
            name=op.f('ck_coupons_check_usage_limit_total_positive'),
        ),
        sa.CheckConstraint(
            'usage_limit_per_user IS NULL OR usage_limit_per_user >= 1',
            name=op.f('ck_coupons_check_usage_limit_per_user_positive'),
        ),
        sa.CheckConstraint(
            "discount_type IN ('PERCENTAGE', 'FIXED_AMOUNT')",
            name=op.f('ck_coupons_check_discount_type'),
        ),
    )
    op.create_index('idx_coupons_active', 'coupons', ['is_active'])
    op.create_index('idx_coupons_valid_dates', 'coupons', ['valid_from', 'valid_until'])

    # Coupon Assignments 테이블 (특정 사용자 전용 쿠폰)
    op.create_table(
        'coupon_assignments',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column(
            'coupon_id', sa.Uuid,
            sa.ForeignKey('coupons.id', ondelete='CASCADE',
                          name=op.f('fk_coupon_assignments_coupon_id_coupons')),
            nullable=False,
        ),
        sa.Column(
            'user_id', sa.Uuid,
            sa.ForeignKey('users.id', ondelete='CASCADE',
                          name=op.f('fk_coupon_assignments_user_id_users')),
            nullable=False,
        ),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('coupon_id', 'user_id', name='uq_coupon_assignments_user'),
    )
    op.create_index('idx_coupon_assignments_user', 'coupon_assignments', ['user_id'])

    # Coupon Usages 테이블 (사용 원장, 한도 슬롯 UNIQUE 제약)
    op.create_table(
        'coupon_usages',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column(
            'coupon_id', sa.Uuid,
            sa.ForeignKey('coupons.id', ondelete='RESTRICT',
                          name=op.f('fk_coupon_usages_coupon_id_coupons')),
            nullable=False,
        ),
        sa.Column(
            'user_id', sa.Uuid,
            sa.ForeignKey('users.id', ondelete='RESTRICT',
                          name=op.f('fk_coupon_usages_user_id_users')),
            nullable=False,
        ),
        sa.Column('order_ref', sa.String(100), nullable=True),
        sa.Column('usage_slot', sa.Integer(), nullable=True),
        sa.Column('user_slot', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('coupon_id', 'usage_slot', name='uq_coupon_usages_usage_slot'),
        sa.UniqueConstraint('coupon_id', 'user_id', 'user_slot', name='uq_coupon_usages_user_slot'),
        sa.CheckConstraint(
            'usage_slot IS NULL OR usage_slot >= 1', name=op.f('ck_coupon_usages_check_usage_slot_positive')
        ),
        sa.CheckConstraint(
            'user_slot IS NULL OR user_slot >= 1', name=op.f('ck_coupon_usages_check_user_slot_positive')
        ),
    )
    op.create_index('idx_coupon_usages_coupon_user', 'coupon_usages', ['coupon_id', 'user_id'])
    op.create_index('idx_coupon_usages_order', 'coupon_usages', ['order_ref'])


def downgrade() -> None:
    """마이그레이션 되돌리기 (다운그레이드)"""
    op.drop_index('idx_coupon_usages_order', table_name='coupon_usages')
    op.drop_index('idx_coupon_usages_coupon_user', table_name='coupon_usages')
    op.drop_table('coupon_usages')
    op.drop_index('idx_coupon_assignments_user', table_name='coupon_assignments')
    op.drop_table('coupon_assignments')
    op.drop_index('idx_coupons_valid_dates', table_name='coupons')
    op.drop_index('idx_coupons_active', table_name='coupons')
    op.drop_table('coupons')
    op.drop_index(op.f('ix_users_status'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
