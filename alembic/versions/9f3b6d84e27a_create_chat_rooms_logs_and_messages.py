"""create chat_rooms, chat_logs and chat_messages tables

Revision ID: 9f3b6d84e27a
Revises: 5c1e0a7d2b41
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "9f3b6d84e27a"
down_revision: str | Sequence[str] | None = "5c1e0a7d2b41"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create chat room, log and message tables."""
    op.create_table(
        "chat_rooms",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("listing_id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("inquirer_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("open_key", sa.String(100), nullable=True),
        sa.Column("has_messages", sa.Boolean(), nullable=False),
        sa.Column("last_message", sa.Text(), nullable=True),
        sa.Column("last_message_sender_id", sa.Integer(), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_by", sa.JSON(), nullable=False),
        sa.Column("first_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delete_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("open_key"),
    )
    op.create_index(
        op.f("ix_chat_rooms_listing_id"), "chat_rooms", ["listing_id"], unique=False
    )
    op.create_index(
        "ix_chat_rooms_owner_id_updated_at",
        "chat_rooms",
        ["owner_id", "updated_at"],
        unique=False,
    )
    op.create_index(
        "ix_chat_rooms_inquirer_id_updated_at",
        "chat_rooms",
        ["inquirer_id", "updated_at"],
        unique=False,
    )
    op.create_index(
        "ix_chat_rooms_listing_id_status",
        "chat_rooms",
        ["listing_id", "status"],
        unique=False,
    )

    op.create_table(
        "chat_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("room_id", sa.String(36), nullable=False),
        sa.Column("conversation_mode", sa.String(20), nullable=False),
        sa.Column("current_state", sa.String(100), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["room_id"], ["chat_rooms.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_chat_logs_room_id"), "chat_logs", ["room_id"], unique=True
    )

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("message_id", sa.String(36), nullable=False),
        sa.Column("room_id", sa.String(36), nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("sender_role", sa.String(20), nullable=False),
        sa.Column("message_type", sa.String(20), nullable=False),
        sa.Column("option_id", sa.String(100), nullable=True),
        sa.Column("option_label", sa.String(255), nullable=True),
        sa.Column("next_state", sa.String(100), nullable=True),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("state_after", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["room_id"], ["chat_rooms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("message_id"),
    )
    op.create_index(
        op.f("ix_chat_messages_room_id"), "chat_messages", ["room_id"], unique=False
    )


def downgrade() -> None:
    """Drop chat message, log and room tables."""
    op.drop_index(op.f("ix_chat_messages_room_id"), table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index(op.f("ix_chat_logs_room_id"), table_name="chat_logs")
    op.drop_table("chat_logs")
    op.drop_index("ix_chat_rooms_listing_id_status", table_name="chat_rooms")
    op.drop_index("ix_chat_rooms_inquirer_id_updated_at", table_name="chat_rooms")
    op.drop_index("ix_chat_rooms_owner_id_updated_at", table_name="chat_rooms")
    op.drop_index(op.f("ix_chat_rooms_listing_id"), table_name="chat_rooms")
    op.drop_table("chat_rooms")
