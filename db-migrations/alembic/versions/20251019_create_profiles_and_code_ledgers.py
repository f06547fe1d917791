"""
Alembic migration to create the profiles table and the one-time code ledgers
(verification_codes for signup OTPs, reset_codes for password recovery)
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20251019'
down_revision = None
branch_labels = None
depends_on = None


def _code_ledger(name, flag):
    op.create_table(
        name,
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('email', sa.String(256), nullable=False),
        sa.Column('code_hash', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column(flag, sa.Boolean, nullable=False, server_default=sa.false()),
    )
    # Lookups are always "latest live row for this email"
    op.create_index(f'ix_{name}_email', name, ['email'])
    op.create_index(f'idx_{name}_email_created_at', name, ['email', 'created_at'])


def upgrade():
    op.create_table(
        'profiles',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(256), nullable=False),
        sa.Column('password', sa.String(128), nullable=False),
        sa.Column('address', sa.String(255), nullable=True),
        sa.Column('department', sa.String(128), nullable=True),
        sa.Column('salary_range', sa.String(64), nullable=True),
        sa.Column('subject_to_teach', sa.String(128), nullable=True),
        sa.Column('photo', sa.String(255), nullable=True),
        sa.Column('whatsapp_number', sa.String(32), nullable=True),
        sa.Column('id_photo', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'], unique=True)
    op.create_index('ix_profiles_department', 'profiles', ['department'])
    op.create_index('ix_profiles_subject_to_teach', 'profiles', ['subject_to_teach'])

    _code_ledger('verification_codes', 'used')
    _code_ledger('reset_codes', 'verified')


def downgrade():
    for name in ('reset_codes', 'verification_codes'):
        op.drop_index(f'idx_{name}_email_created_at', table_name=name)
        op.drop_index(f'ix_{name}_email', table_name=name)
        op.drop_table(name)
    op.drop_index('ix_profiles_subject_to_teach', table_name='profiles')
    op.drop_index('ix_profiles_department', table_name='profiles')
    op.drop_index('ix_profiles_email', table_name='profiles')
    op.drop_table('profiles')
