"""saved recipients with row-level security

Revision ID: 3c1f9a7e52d4
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1f9a7e52d4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_FUNCTIONS = (
    """
    CREATE OR REPLACE FUNCTION set_current_wallet_address(wallet_address text)
    RETURNS void
    LANGUAGE sql
    AS $$
        SELECT set_config('app.current_wallet_address', lower(wallet_address), true);
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION encrypt_recipient_data(recipient_json text, encryption_key text)
    RETURNS text
    LANGUAGE sql
    STRICT
    AS $$
        SELECT encode(pgp_sym_encrypt(recipient_json, encryption_key, 'cipher-algo=aes256'), 'base64');
    $$
    """,
    """
    CREATE OR REPLACE FUNCTION decrypt_recipient_data(encrypted_data text, encryption_key text)
    RETURNS text
    LANGUAGE sql
    STRICT
    AS $$
        SELECT pgp_sym_decrypt(decode(encrypted_data, 'base64'), encryption_key);
    $$
    """,
)


def upgrade() -> None:
    """Create the encrypted recipients table, crypto functions and RLS policy."""
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "saved_recipients",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("normalized_wallet_address", sa.String(length=42), nullable=False),
        sa.Column("recipient_fingerprint", sa.String(length=64), nullable=False),
        sa.Column("encrypted_recipient", sa.LargeBinary(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "normalized_wallet_address",
            "recipient_fingerprint",
            name="uq_saved_recipients_wallet_fingerprint",
        ),
    )
    op.create_index(
        "ix_saved_recipients_normalized_wallet_address",
        "saved_recipients",
        ["normalized_wallet_address"],
    )

    for statement in _FUNCTIONS:
        op.execute(statement)

    op.execute("ALTER TABLE saved_recipients ENABLE ROW LEVEL SECURITY")
    # The owning role is the application role; without FORCE it bypasses the policy.
    op.execute("ALTER TABLE saved_recipients FORCE ROW LEVEL SECURITY")
    op.execute(
        """
        CREATE POLICY saved_recipients_owner ON saved_recipients
        USING (normalized_wallet_address = current_setting('app.current_wallet_address', true))
        WITH CHECK (normalized_wallet_address = current_setting('app.current_wallet_address', true))
        """
    )


def downgrade() -> None:
    """Drop everything created by ``upgrade``."""
    op.execute("DROP POLICY IF EXISTS saved_recipients_owner ON saved_recipients")
    op.execute("ALTER TABLE saved_recipients NO FORCE ROW LEVEL SECURITY")
    op.execute("ALTER TABLE saved_recipients DISABLE ROW LEVEL SECURITY")
    op.execute("DROP FUNCTION IF EXISTS decrypt_recipient_data(text, text)")
    op.execute("DROP FUNCTION IF EXISTS encrypt_recipient_data(text, text)")
    op.execute("DROP FUNCTION IF EXISTS set_current_wallet_address(text)")
    op.drop_index("ix_saved_recipients_normalized_wallet_address", table_name="saved_recipients")
    op.drop_table("saved_recipients")
