"""Initial identity schema: accounts, roles, credentials, trips, events

Learn: Besides the tables, this revision seeds the two roles and turns
on row-level security for trips (PostgreSQL only):

    ENABLE ROW LEVEL SECURITY   policies apply to normal roles
    FORCE ROW LEVEL SECURITY    ...and to the table owner too

The policy compares owner_id with the per-connection setting written by
SessionContextBinder. `current_setting(name, true)` returns NULL when
the setting was never written and '' after it was cleared; nullif turns
both into NULL, and `owner_id = NULL` matches nothing. An unbound
connection therefore sees zero rows.

Admins see everything: the second policy checks the bound account's
roles. It runs as the querying role, which must be able to read
account_roles and roles (neither is row-secured).

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_BOUND_ACCOUNT = "nullif(current_setting('app.current_account_id', true), '')::uuid"


def upgrade() -> None:
    roles = op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_table(
        'account_roles',
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('account_id', 'role_id'),
    )
    op.create_table(
        'credentials',
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('password_hash', sa.LargeBinary(length=64), nullable=False),
        sa.Column('password_salt', sa.LargeBinary(length=32), nullable=False),
        sa.Column('refresh_token_hash', sa.String(length=64), nullable=True),
        sa.Column('refresh_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reset_token_hash', sa.String(length=64), nullable=True),
        sa.Column('reset_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('account_id'),
        sa.UniqueConstraint('reset_token_hash'),
    )
    op.create_index(
        op.f('ix_credentials_refresh_token_hash'), 'credentials', ['refresh_token_hash']
    )
    op.create_table(
        'trips',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('destination', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_trips_owner', 'trips', ['owner_id'])
    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('stream_id', sa.String(length=200), nullable=False),
        sa.Column('type', sa.String(length=100), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column(
            'created_at', sa.DateTime(timezone=True),
            server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True,
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_events_stream', 'events', ['stream_id', 'id'])
    op.create_index('idx_events_type', 'events', ['type'])

    op.bulk_insert(roles, [{'name': 'User'}, {'name': 'Admin'}])

    if op.get_bind().dialect.name != 'postgresql':
        return

    # ─── Row-level security on trips ─────────────────────
    op.execute("ALTER TABLE trips ENABLE ROW LEVEL SECURITY")
    op.execute("ALTER TABLE trips FORCE ROW LEVEL SECURITY")
    op.execute(f"""
        CREATE POLICY trips_owner_isolation ON trips
            USING (owner_id = {_BOUND_ACCOUNT})
            WITH CHECK (owner_id = {_BOUND_ACCOUNT})
    """)
    op.execute(f"""
        CREATE POLICY trips_admin_access ON trips
            USING (EXISTS (
                SELECT 1
                FROM account_roles ar
                JOIN roles r ON r.id = ar.role_id
                WHERE ar.account_id = {_BOUND_ACCOUNT}
                  AND r.name = 'Admin'
            ))
    """)


def downgrade() -> None:
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("DROP POLICY IF EXISTS trips_admin_access ON trips")
        op.execute("DROP POLICY IF EXISTS trips_owner_isolation ON trips")
        op.execute("ALTER TABLE trips NO FORCE ROW LEVEL SECURITY")
        op.execute("ALTER TABLE trips DISABLE ROW LEVEL SECURITY")

    op.drop_index('idx_events_type', table_name='events')
    op.drop_index('idx_events_stream', table_name='events')
    op.drop_table('events')
    op.drop_index('idx_trips_owner', table_name='trips')
    op.drop_table('trips')
    op.drop_index(op.f('ix_credentials_refresh_token_hash'), table_name='credentials')
    op.drop_table('credentials')
    op.drop_table('account_roles')
    op.drop_table('accounts')
    op.drop_table('roles')
