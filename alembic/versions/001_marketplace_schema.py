"""marketplace schema: profiles, registration wizard tables, reviews, messages

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TZ = sa.DateTime(timezone=True)


def _table_exists(conn, table: str) -> bool:
    from sqlalchemy import inspect
    return inspect(conn).has_table(table)


def _id() -> sa.Column:
    return sa.Column("id", sa.Integer(), autoincrement=True, nullable=False)


def _user(column: str = "user_id") -> sa.Column:
    return sa.Column(column, sa.String(64), nullable=False)


def _user_fk(column: str = "user_id") -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint([column], ["profiles.id"], ondelete="CASCADE")


def _tables() -> list[tuple]:
    """(имя, колонки и ограничения) в порядке создания."""
    return [
        ("profiles", [
            sa.Column("id", sa.String(64), nullable=False),
            sa.Column("email", sa.String(256), nullable=True),
            sa.Column("full_name", sa.String(256), nullable=True),
            sa.Column("first_name", sa.String(128), nullable=True),
            sa.Column("last_name", sa.String(128), nullable=True),
            sa.Column("phone", sa.String(64), nullable=True),
            sa.Column("birthday", sa.Date(), nullable=True),
            sa.Column("mailing_address", sa.String(512), nullable=True),
            sa.Column("full_address", sa.String(512), nullable=True),
            sa.Column("avatar_url", sa.String(1024), nullable=True),
            sa.Column("bio", sa.Text(), nullable=True),
            sa.Column("user_type", sa.String(32), nullable=True),
            sa.Column("registration_status", sa.String(32), nullable=True),
            sa.Column("submitted_at", TZ, nullable=True),
            sa.Column("tier_package", sa.String(32), nullable=True),
            sa.Column("languages", sa.JSON(), nullable=True),
            sa.Column("tools_technologies", sa.JSON(), nullable=True),
            sa.Column("years_of_experience", sa.Integer(), nullable=True),
            sa.Column("hourly_rate", sa.Float(), nullable=True),
            sa.Column("referral_fee_percentage", sa.Float(), nullable=True),
            sa.Column("price_per_sqft", sa.Float(), nullable=True),
            sa.Column("created_at", TZ, nullable=True),
            sa.Column("updated_at", TZ, nullable=True),
            sa.PrimaryKeyConstraint("id"),
        ]),
        ("user_roles", [
            _id(), _user(),
            sa.Column("role", sa.String(64), nullable=False),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
        ]),
        ("psp_types", [
            _id(),
            sa.Column("label", sa.String(128), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("label"),
        ]),
        ("user_psp_types", [
            _id(), _user(),
            sa.Column("psp_type_id", sa.Integer(), nullable=False),
            _user_fk(),
            sa.ForeignKeyConstraint(["psp_type_id"], ["psp_types.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "psp_type_id", name="uq_user_psp_type"),
        ]),
        ("skills", [
            _id(),
            sa.Column("label", sa.String(128), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("label"),
        ]),
        ("user_skills", [
            _id(), _user(),
            sa.Column("skill_id", sa.Integer(), nullable=False),
            _user_fk(),
            sa.ForeignKeyConstraint(["skill_id"], ["skills.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "skill_id", name="uq_user_skill"),
        ]),
        ("profile_tags", [
            _id(), _user(),
            sa.Column("category", sa.String(64), nullable=False),
            sa.Column("label", sa.String(128), nullable=False),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "category", "label", name="uq_profile_tag"),
        ]),
        ("service_areas", [
            _id(), _user(),
            sa.Column("zip_code", sa.String(10), nullable=False),
            sa.Column("radius_miles", sa.Integer(), nullable=False, server_default="25"),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
        ]),
        ("payment_preferences", [
            _id(), _user(),
            sa.Column("payment_packet", sa.String(32), nullable=True),
            sa.Column("accepts_cash", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("accepts_credit", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("payment_terms", sa.Text(), nullable=True),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id"),
        ]),
        ("identity_documents", [
            _id(), _user(),
            sa.Column("document_type", sa.String(64), nullable=False),
            sa.Column("country", sa.String(64), nullable=False),
            sa.Column("state", sa.String(64), nullable=True),
            sa.Column("number", sa.String(128), nullable=False),
            sa.Column("file_url", sa.String(1024), nullable=False),
            sa.Column("created_at", TZ, nullable=True),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
        ]),
        ("licenses_credentials", [
            _id(), _user(),
            sa.Column("document_type", sa.String(64), nullable=False),
            sa.Column("country", sa.String(64), nullable=False),
            sa.Column("state", sa.String(64), nullable=True),
            sa.Column("number", sa.String(128), nullable=False),
            sa.Column("active_since", sa.Date(), nullable=True),
            sa.Column("renewal_date", sa.Date(), nullable=True),
            sa.Column("expiration_date", sa.Date(), nullable=True),
            sa.Column("file_url", sa.String(1024), nullable=True),
            sa.Column("created_at", TZ, nullable=True),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
        ]),
        ("business_info", [
            _id(), _user(),
            sa.Column("company_name", sa.String(256), nullable=True),
            sa.Column("years_of_experience", sa.Integer(), nullable=True),
            sa.Column("business_address", sa.String(512), nullable=True),
            sa.Column("business_hours", sa.String(256), nullable=True),
            sa.Column("best_times_to_reach", sa.String(256), nullable=True),
            sa.Column("number_of_employees", sa.Integer(), nullable=True),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id"),
        ]),
        ("bonds_insurance", [
            _id(), _user(),
            sa.Column("document_type", sa.String(64), nullable=False),
            sa.Column("file_url", sa.String(1024), nullable=False),
            sa.Column("created_at", TZ, nullable=True),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
        ]),
        ("preference_rankings", [
            _id(), _user(),
            sa.Column("category", sa.String(64), nullable=False),
            sa.Column("ranking", sa.Integer(), nullable=False),
            sa.Column("created_at", TZ, nullable=True),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "category", name="uq_preference_ranking"),
        ]),
        ("e_signatures", [
            _id(), _user(),
            sa.Column("document_type", sa.String(64), nullable=False),
            sa.Column("signature_data", sa.Text(), nullable=False),
            sa.Column("name_printed", sa.String(256), nullable=False),
            sa.Column("name_signed", sa.String(256), nullable=False),
            sa.Column("signed_at", TZ, nullable=True),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "document_type", name="uq_e_signature"),
        ]),
        ("registration_steps", [
            _id(), _user(),
            sa.Column("step_key", sa.String(64), nullable=False),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("field_values", sa.JSON(), nullable=True),
            sa.Column("completed_at", TZ, nullable=True),
            sa.Column("updated_at", TZ, nullable=True),
            _user_fk(), sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "step_key", name="uq_registration_step"),
        ]),
        ("reviews", [
            _id(), _user("profile_id"),
            sa.Column("reviewer_id", sa.String(64), nullable=False),
            sa.Column("rating", sa.Integer(), nullable=False),
            sa.Column("comment", sa.Text(), nullable=False),
            sa.Column("created_at", TZ, nullable=True),
            _user_fk("profile_id"), sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("profile_id", "reviewer_id", name="uq_review_author"),
        ]),
        ("awards", [
            _id(), _user("recipient_id"),
            sa.Column("title", sa.String(256), nullable=False),
            sa.Column("date_awarded", sa.Date(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            _user_fk("recipient_id"), sa.PrimaryKeyConstraint("id"),
        ]),
        ("services", [
            _id(), _user("provider_id"),
            sa.Column("title", sa.String(256), nullable=False),
            sa.Column("category", sa.String(128), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("price", sa.Float(), nullable=True),
            sa.Column("created_at", TZ, nullable=True),
            _user_fk("provider_id"), sa.PrimaryKeyConstraint("id"),
        ]),
        ("messages", [
            _id(),
            sa.Column("sender_id", sa.String(64), nullable=False),
            sa.Column("recipient_id", sa.String(64), nullable=False),
            sa.Column("subject", sa.String(256), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", TZ, nullable=True),
            sa.PrimaryKeyConstraint("id"),
        ]),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    for name, columns in _tables():
        if not _table_exists(conn, name):
            op.create_table(name, *columns)
    op.create_index("ix_messages_recipient_read", "messages", ["recipient_id", "read"], if_not_exists=True)


def downgrade() -> None:
    op.drop_index("ix_messages_recipient_read", table_name="messages", if_exists=True)
    for name, _ in reversed(_tables()):
        op.drop_table(name)
