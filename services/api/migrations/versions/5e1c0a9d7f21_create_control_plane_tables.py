"""Create control plane tables

Revision ID: 5e1c0a9d7f21
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5e1c0a9d7f21"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "servers",
        sa.Column("handle", sa.String(255), primary_key=True),
        sa.Column("hostname", sa.String(255), nullable=False),
        sa.Column("public_ip", sa.String(255), nullable=False),
        sa.Column("ssh_user", sa.String(50), nullable=False),
        sa.Column("ssh_port", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("max_instances", sa.Integer(), nullable=True),
        sa.Column("org_id", sa.String(64), nullable=True),
        sa.Column("provider_id", sa.String(255), nullable=True, unique=True),
        sa.Column("region", sa.String(100), nullable=True),
        sa.Column("plan", sa.String(100), nullable=True),
        sa.Column("monthly_cost", sa.Float(), nullable=True),
        sa.Column("admission_seq", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_health_check", sa.DateTime(), nullable=True),
        sa.Column("labels", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_servers_org_id", "servers", ["org_id"])

    op.create_table(
        "organizations",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("plan", sa.String(50), nullable=False),
        sa.Column("max_instances", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    op.create_table(
        "org_server_access",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("org_id", sa.String(64), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column(
            "server_handle", sa.String(255), sa.ForeignKey("servers.handle"), nullable=False
        ),
        sa.Column("max_instances", sa.Integer(), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("org_id", "server_handle", name="uq_org_server_access"),
    )
    op.create_index("ix_org_server_access_org_id", "org_server_access", ["org_id"])
    op.create_index("ix_org_server_access_server_handle", "org_server_access", ["server_handle"])

    op.create_table(
        "deployments",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("org_id", sa.String(64), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column(
            "server_handle", sa.String(255), sa.ForeignKey("servers.handle"), nullable=False
        ),
        sa.Column("instance_name", sa.String(64), nullable=False),
        sa.Column("config", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("steps", sa.JSON(), nullable=False),
        sa.Column("port", sa.Integer(), nullable=True),
        sa.Column("gateway_instance_id", sa.String(64), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_deployments_org_id", "deployments", ["org_id"])
    op.create_index("ix_deployments_server_handle", "deployments", ["server_handle"])
    op.create_index("ix_deployments_status", "deployments", ["status"])

    op.create_table(
        "gateway_instances",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "server_handle", sa.String(255), sa.ForeignKey("servers.handle"), nullable=False
        ),
        sa.Column("org_id", sa.String(64), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("port", sa.Integer(), nullable=False),
        sa.Column("token", sa.String(255), nullable=True),
        sa.Column("url", sa.String(512), nullable=True),
        sa.Column("state_dir", sa.String(512), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("agent_count", sa.Integer(), nullable=False),
        sa.Column("primary_agent_name", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("server_handle", "name", name="uq_gateway_instance_server_name"),
        sa.UniqueConstraint("server_handle", "port", name="uq_gateway_instance_server_port"),
    )
    op.create_index("ix_gateway_instances_server_handle", "gateway_instances", ["server_handle"])
    op.create_index("ix_gateway_instances_org_id", "gateway_instances", ["org_id"])

    op.create_table(
        "skills",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "instance_skills",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "instance_id",
            sa.String(64),
            sa.ForeignKey("gateway_instances.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("skill_id", sa.String(64), sa.ForeignKey("skills.id"), nullable=False),
        sa.Column("deployed_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("instance_id", "skill_id", name="uq_instance_skill"),
    )
    op.create_index("ix_instance_skills_instance_id", "instance_skills", ["instance_id"])
    op.create_index("ix_instance_skills_skill_id", "instance_skills", ["skill_id"])

    op.create_table(
        "provider_credentials",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(100), nullable=False),
        sa.Column("org_id", sa.String(64), nullable=True),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("value", sa.String(), nullable=False),
        sa.Column("sensitive", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_provider_credentials_provider", "provider_credentials", ["provider"])
    op.create_index("ix_provider_credentials_org_id", "provider_credentials", ["org_id"])


def downgrade() -> None:
    op.drop_table("provider_credentials")
    op.drop_table("instance_skills")
    op.drop_table("skills")
    op.drop_table("gateway_instances")
    op.drop_table("deployments")
    op.drop_table("org_server_access")
    op.drop_table("organizations")
    op.drop_table("servers")
