from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.sql import expression

revision = "0001_initial_schema"
down_revision = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def _user_role_enum() -> sa.Enum:
    return sa.Enum("user", "admin", "superadmin", name="userrole")


def _contact_privacy_enum() -> sa.Enum:
    return sa.Enum("everyone", "members", "no_one", name="contactprivacy")


def upgrade() -> None:
    user_role_enum = _user_role_enum()
    contact_privacy_enum = _contact_privacy_enum()

    bind = op.get_bind()
    user_role_enum.create(bind, checkfirst=True)
    contact_privacy_enum.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=True),
        sa.Column("role", user_role_enum, nullable=False, server_default="user"),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("bio", sa.String(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("interests", sa.String(), nullable=True),
        sa.Column(
            "privacy_contact",
            contact_privacy_enum,
            nullable=False,
            server_default="members",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )

    op.create_table(
        "social_identities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("provider", sa.String(), nullable=False),
        sa.Column("provider_user_id", sa.String(), nullable=False),
        sa.Column(
            "email_verified",
            sa.Boolean(),
            nullable=False,
            server_default=expression.false(),
        ),
        sa.UniqueConstraint(
            "provider",
            "provider_user_id",
            name="uq_provider_sub",
        ),
    )
    op.create_index(
        "ix_social_identities_user_id",
        "social_identities",
        ["user_id"],
        unique=False,
    )
    op.create_index(
        "ix_social_identities_provider",
        "social_identities",
        ["provider"],
        unique=False,
    )
    op.create_index(
        "ix_social_identities_provider_user_id",
        "social_identities",
        ["provider_user_id"],
        unique=False,
    )

    op.create_table(
        "password_reset_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index(
        "ix_password_reset_tokens_user_id",
        "password_reset_tokens",
        ["user_id"],
        unique=False,
    )
    op.create_index(
        "ix_password_reset_tokens_token_hash",
        "password_reset_tokens",
        ["token_hash"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index(
        "ix_password_reset_tokens_token_hash",
        table_name="password_reset_tokens",
    )
    op.drop_index(
        "ix_password_reset_tokens_user_id",
        table_name="password_reset_tokens",
    )
    op.drop_table("password_reset_tokens")

    op.drop_index(
        "ix_social_identities_provider_user_id",
        table_name="social_identities",
    )
    op.drop_index(
        "ix_social_identities_provider",
        table_name="social_identities",
    )
    op.drop_index(
        "ix_social_identities_user_id",
        table_name="social_identities",
    )
    op.drop_table("social_identities")

    op.drop_table("users")

    bind = op.get_bind()
    _contact_privacy_enum().drop(bind, checkfirst=True)
    _user_role_enum().drop(bind, checkfirst=True)
