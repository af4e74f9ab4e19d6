"""add communities, memberships, invites and messages

Revision ID: 0002_add_communities
Revises: 0001_initial_schema
Create Date: 2026-09-21 00:00:00.000000
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0002_add_communities"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def _enums() -> dict[str, sa.Enum]:
    return {
        "visibility": sa.Enum("public", "private", "invite", name="communityvisibility"),
        "role": sa.Enum("owner", "admin", "member", name="memberrole"),
        "status": sa.Enum("pending", "approved", "banned", name="memberstatus"),
        "invite": sa.Enum("pending", "accepted", "declined", name="invitestatus"),
    }


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    enums = _enums()
    bind = op.get_bind()
    for enum in enums.values():
        enum.create(bind, checkfirst=True)

    op.create_table(
        "communities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column(
            "visibility",
            enums["visibility"],
            nullable=False,
            server_default="public",
        ),
        sa.Column("max_members", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sport", sa.String(), nullable=True),
        sa.Column("region", sa.String(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_communities_creator_id", "communities", ["creator_id"])

    op.create_table(
        "community_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "community_id",
            sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", enums["role"], nullable=False, server_default="member"),
        sa.Column("status", enums["status"], nullable=False, server_default="pending"),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("community_id", "user_id", name="uq_community_member"),
    )
    op.create_index(
        "ix_community_members_community_id", "community_members", ["community_id"]
    )
    op.create_index("ix_community_members_user_id", "community_members", ["user_id"])

    op.create_table(
        "community_invites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "community_id",
            sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("invited_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "invited_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True
        ),
        sa.Column("status", enums["invite"], nullable=False, server_default="pending"),
        _created_at(),
        sa.UniqueConstraint("community_id", "email", name="uq_community_invite_email"),
    )
    op.create_index(
        "ix_community_invites_community_id", "community_invites", ["community_id"]
    )
    op.create_index("ix_community_invites_email", "community_invites", ["email"])

    op.create_table(
        "community_messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "community_id",
            sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_community_messages_community_id", "community_messages", ["community_id"]
    )

    op.create_table(
        "private_messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "recipient_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("message", sa.Text(), nullable=False),
        _created_at(),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_private_messages_sender_id", "private_messages", ["sender_id"])
    op.create_index(
        "ix_private_messages_recipient_id", "private_messages", ["recipient_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_private_messages_recipient_id", table_name="private_messages")
    op.drop_index("ix_private_messages_sender_id", table_name="private_messages")
    op.drop_table("private_messages")

    op.drop_index(
        "ix_community_messages_community_id", table_name="community_messages"
    )
    op.drop_table("community_messages")

    op.drop_index("ix_community_invites_email", table_name="community_invites")
    op.drop_index("ix_community_invites_community_id", table_name="community_invites")
    op.drop_table("community_invites")

    op.drop_index("ix_community_members_user_id", table_name="community_members")
    op.drop_index("ix_community_members_community_id", table_name="community_members")
    op.drop_table("community_members")

    op.drop_index("ix_communities_creator_id", table_name="communities")
    op.drop_table("communities")

    bind = op.get_bind()
    for enum in reversed(list(_enums().values())):
        enum.drop(bind, checkfirst=True)
