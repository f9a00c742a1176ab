"""Initial schema: teams, fleet hierarchy, machines, reports, corrections, audit trail.

Revision ID: 0001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Teams and membership
    op.create_table(
        "teams",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_teams_id", "teams", ["id"])

    op.create_table(
        "team_members",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("team_id", sa.Integer, sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )
    op.create_index("ix_team_members_id", "team_members", ["id"])
    op.create_index("ix_team_members_team_id", "team_members", ["team_id"])
    op.create_index("ix_team_members_user_id", "team_members", ["user_id"])

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("key_hash", sa.String(255), nullable=False, unique=True),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("member_id", sa.Integer, sa.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_api_keys_id", "api_keys", ["id"])
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"])
    op.create_index("ix_api_keys_member_id", "api_keys", ["member_id"])

    # Organization -> Site -> Group
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("team_id", sa.Integer, sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("team_id", "name", name="uq_organizations_team_name"),
    )
    op.create_index("ix_organizations_id", "organizations", ["id"])
    op.create_index("ix_organizations_team_id", "organizations", ["team_id"])

    op.create_table(
        "sites",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("organization_id", "name", name="uq_sites_organization_name"),
    )
    op.create_index("ix_sites_id", "sites", ["id"])
    op.create_index("ix_sites_organization_id", "sites", ["organization_id"])

    op.create_table(
        "machine_groups",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("site_id", sa.Integer, sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("site_id", "name", name="uq_machine_groups_site_name"),
    )
    op.create_index("ix_machine_groups_id", "machine_groups", ["id"])
    op.create_index("ix_machine_groups_site_id", "machine_groups", ["site_id"])

    # Machines and their reports
    op.create_table(
        "machines",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("team_id", sa.Integer, sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("group_id", sa.Integer, sa.ForeignKey("machine_groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("hostname", sa.String(255), nullable=False),
        sa.Column("machine_identifier", sa.String(255), nullable=True),
        sa.Column("os", sa.String(50), nullable=True),
        sa.Column("os_version", sa.String(255), nullable=True),
        sa.Column("last_audit_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_score", sa.Integer, nullable=True),
        sa.Column("last_grade", sa.String(2), nullable=True),
        sa.Column("original_score", sa.Integer, nullable=True),
        sa.Column("total_audits", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("team_id", "hostname", name="uq_machines_team_hostname"),
    )
    op.create_index("ix_machines_id", "machines", ["id"])
    op.create_index("ix_machines_team_id", "machines", ["team_id"])
    op.create_index("ix_machines_group_id", "machines", ["group_id"])
    op.create_index("ix_machines_hostname", "machines", ["hostname"])
    op.create_index("ix_machines_os", "machines", ["os"])

    op.create_table(
        "audit_reports",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("machine_id", sa.Integer, sa.ForeignKey("machines.id", ondelete="CASCADE"), nullable=False),
        sa.Column("uploaded_by", sa.String(255), nullable=True),
        sa.Column("audit_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("script_name", sa.String(255), nullable=True),
        sa.Column("script_version", sa.String(50), nullable=True),
        sa.Column("file_name", sa.String(255), nullable=True),
        sa.Column("score", sa.Integer, nullable=False),
        sa.Column("original_score", sa.Integer, nullable=False),
        sa.Column("grade", sa.String(2), nullable=False),
        sa.Column("total_controls", sa.Integer, nullable=False, server_default="0"),
        sa.Column("passed_controls", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_controls", sa.Integer, nullable=False, server_default="0"),
        sa.Column("warning_controls", sa.Integer, nullable=False, server_default="0"),
        sa.Column("raw_json", sa.Text, nullable=False),
        sa.Column("html_content", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_reports_id", "audit_reports", ["id"])
    op.create_index("ix_audit_reports_machine_id", "audit_reports", ["machine_id"])
    op.create_index("ix_audit_reports_audit_date", "audit_reports", ["audit_date"])
    op.create_index("ix_audit_reports_created_at", "audit_reports", ["created_at"])

    op.create_table(
        "control_corrections",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("report_id", sa.Integer, sa.ForeignKey("audit_reports.id", ondelete="CASCADE"), nullable=False),
        sa.Column("control_id", sa.String(255), nullable=False),
        sa.Column("original_status", sa.String(10), nullable=False),
        sa.Column("corrected_status", sa.String(10), nullable=False),
        sa.Column("justification", sa.Text, nullable=False),
        sa.Column("corrected_by", sa.String(255), nullable=False),
        sa.Column("corrected_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("report_id", "control_id", name="uq_control_corrections_report_control"),
    )
    op.create_index("ix_control_corrections_id", "control_corrections", ["id"])
    op.create_index("ix_control_corrections_report_id", "control_corrections", ["report_id"])

    # Audit trail
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("team_id", sa.Integer, sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=True),
        sa.Column("actor_user_id", sa.String(255), nullable=True),
        sa.Column("actor_source", sa.String(50), nullable=False),
        sa.Column("actor_role", sa.String(50), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("resource_id", sa.Integer, nullable=True),
        sa.Column("details", sa.JSON, nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(255), nullable=True),
    )
    op.create_index("ix_activity_logs_id", "activity_logs", ["id"])
    op.create_index("ix_activity_logs_timestamp", "activity_logs", ["timestamp"])
    op.create_index("ix_activity_logs_team_id", "activity_logs", ["team_id"])
    op.create_index("ix_activity_logs_actor_user_id", "activity_logs", ["actor_user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_resource_type", "activity_logs", ["resource_type"])
    op.create_index("ix_activity_logs_resource_id", "activity_logs", ["resource_id"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("control_corrections")
    op.drop_table("audit_reports")
    op.drop_table("machines")
    op.drop_table("machine_groups")
    op.drop_table("sites")
    op.drop_table("organizations")
    op.drop_table("api_keys")
    op.drop_table("team_members")
    op.drop_table("teams")
