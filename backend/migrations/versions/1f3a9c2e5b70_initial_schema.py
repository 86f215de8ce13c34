"""Initial schema: projects, tasks, cards, milestones and workflow automation.

Revision ID: 1f3a9c2e5b70
Revises:
Create Date: 2026-10-15 00:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "1f3a9c2e5b70"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("organizations"):
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if not inspector.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    if not inspector.has_table("projects"):
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_projects_org_id"), "projects", ["org_id"])

    if not inspector.has_table("task_types"):
        op.create_table(
            "task_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("icon", sa.String(), nullable=False, server_default="task"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_task_types_project_id"), "task_types", ["project_id"])

    if not inspector.has_table("milestones"):
        op.create_table(
            "milestones",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("state", sa.String(), nullable=False, server_default="ready"),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("activated_at", sa.DateTime(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.CheckConstraint(
                "(state = 'ready' AND activated_at IS NULL AND completed_at IS NULL)"
                " OR (state = 'active' AND activated_at IS NOT NULL AND completed_at IS NULL)"
                " OR (state = 'completed' AND activated_at IS NOT NULL"
                " AND completed_at IS NOT NULL)",
                name="ck_milestones_state_timestamps",
            ),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_milestones_project_id"), "milestones", ["project_id"])
        op.create_index(
            "ix_milestones_project_state_position",
            "milestones",
            ["project_id", "state", "position"],
        )
        op.create_index(
            "ix_milestones_one_active_per_project",
            "milestones",
            ["project_id"],
            unique=True,
            sqlite_where=sa.text("state = 'active'"),
            postgresql_where=sa.text("state = 'active'"),
        )

    if not inspector.has_table("cards"):
        op.create_table(
            "cards",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("milestone_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.ForeignKeyConstraint(["milestone_id"], ["milestones.id"]),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_cards_project_id"), "cards", ["project_id"])
        op.create_index(op.f("ix_cards_milestone_id"), "cards", ["milestone_id"])
        op.create_index("ix_cards_project_milestone", "cards", ["project_id", "milestone_id"])

    if not inspector.has_table("workflows"):
        op.create_table(
            "workflows",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("org_id", "project_id", "name", name="uq_workflows_scope_name"),
        )
        op.create_index(op.f("ix_workflows_org_id"), "workflows", ["org_id"])
        op.create_index(op.f("ix_workflows_project_id"), "workflows", ["project_id"])

    if not inspector.has_table("task_templates"):
        op.create_table(
            "task_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("type_id", sa.Integer(), nullable=False),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("created_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint(
                "priority BETWEEN 1 AND 5",
                name="ck_task_templates_priority_range",
            ),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.ForeignKeyConstraint(["type_id"], ["task_types.id"]),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_task_templates_org_id"), "task_templates", ["org_id"])
        op.create_index(op.f("ix_task_templates_project_id"), "task_templates", ["project_id"])

    if not inspector.has_table("rules"):
        op.create_table(
            "rules",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("workflow_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("goal", sa.String(), nullable=True),
            sa.Column("resource_type", sa.String(), nullable=False),
            sa.Column("task_type_id", sa.Integer(), nullable=True),
            sa.Column("to_state", sa.String(), nullable=False),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column(
                "user_triggered_only",
                sa.Boolean(),
                nullable=False,
                server_default=sa.false(),
            ),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint(
                "resource_type IN ('task', 'card')",
                name="ck_rules_resource_type",
            ),
            sa.CheckConstraint(
                "resource_type = 'task' OR task_type_id IS NULL",
                name="ck_rules_task_type_only_for_tasks",
            ),
            sa.ForeignKeyConstraint(["workflow_id"], ["workflows.id"]),
            sa.ForeignKeyConstraint(["task_type_id"], ["task_types.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_rules_workflow_id"), "rules", ["workflow_id"])
        op.create_index(op.f("ix_rules_resource_type"), "rules", ["resource_type"])

    if not inspector.has_table("rule_templates"):
        op.create_table(
            "rule_templates",
            sa.Column("rule_id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("execution_order", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["rule_id"], ["rules.id"]),
            sa.ForeignKeyConstraint(["template_id"], ["task_templates.id"]),
            sa.PrimaryKeyConstraint("rule_id", "template_id"),
        )

    if not inspector.has_table("tasks"):
        op.create_table(
            "tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("type_id", sa.Integer(), nullable=False),
            sa.Column("card_id", sa.Integer(), nullable=True),
            sa.Column("milestone_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=56), nullable=False),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("status", sa.String(), nullable=False, server_default="available"),
            sa.Column("created_by", sa.Integer(), nullable=False),
            sa.Column("claimed_by", sa.Integer(), nullable=True),
            sa.Column("claimed_at", sa.DateTime(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("pool_lifetime_s", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_entered_pool_at", sa.DateTime(), nullable=True),
            sa.Column("created_from_rule_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.CheckConstraint("priority BETWEEN 1 AND 5", name="ck_tasks_priority_range"),
            sa.CheckConstraint(
                "status IN ('available', 'claimed', 'completed')",
                name="ck_tasks_status",
            ),
            sa.CheckConstraint(
                "card_id IS NULL OR milestone_id IS NULL",
                name="ck_tasks_card_milestone_exclusive",
            ),
            sa.CheckConstraint(
                "pool_lifetime_s >= 0",
                name="ck_tasks_pool_lifetime_non_negative",
            ),
            sa.CheckConstraint(
                "(status = 'claimed') = (claimed_by IS NOT NULL)",
                name="ck_tasks_claimed_by_matches_status",
            ),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.ForeignKeyConstraint(["type_id"], ["task_types.id"]),
            sa.ForeignKeyConstraint(["card_id"], ["cards.id"]),
            sa.ForeignKeyConstraint(["milestone_id"], ["milestones.id"]),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.ForeignKeyConstraint(["claimed_by"], ["users.id"]),
            sa.ForeignKeyConstraint(["created_from_rule_id"], ["rules.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in (
            "project_id",
            "type_id",
            "card_id",
            "milestone_id",
            "status",
            "created_by",
            "claimed_by",
            "created_from_rule_id",
        ):
            op.create_index(op.f(f"ix_tasks_{column}"), "tasks", [column])
        op.create_index(
            "ix_tasks_project_milestone_status",
            "tasks",
            ["project_id", "milestone_id", "status"],
        )
        op.create_index("ix_tasks_card_status", "tasks", ["card_id", "status"])

    if not inspector.has_table("rule_executions"):
        op.create_table(
            "rule_executions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("rule_id", sa.Integer(), nullable=False),
            sa.Column("origin_type", sa.String(), nullable=False),
            sa.Column("origin_id", sa.Integer(), nullable=False),
            sa.Column("outcome", sa.String(), nullable=False),
            sa.Column("suppression_reason", sa.String(), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint(
                "origin_type IN ('task', 'card')",
                name="ck_rule_executions_origin_type",
            ),
            sa.CheckConstraint(
                "outcome IN ('applied', 'suppressed')",
                name="ck_rule_executions_outcome",
            ),
            sa.CheckConstraint(
                "(outcome = 'applied' AND suppression_reason IS NULL)"
                " OR (outcome = 'suppressed' AND suppression_reason IS NOT NULL)",
                name="ck_rule_executions_reason_matches_outcome",
            ),
            sa.ForeignKeyConstraint(["rule_id"], ["rules.id"]),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_rule_executions_one_applied_per_origin",
            "rule_executions",
            ["rule_id", "origin_type", "origin_id"],
            unique=True,
            sqlite_where=sa.text("outcome = 'applied'"),
            postgresql_where=sa.text("outcome = 'applied'"),
        )
        op.create_index(
            "ix_rule_executions_origin",
            "rule_executions",
            ["origin_type", "origin_id"],
        )
        op.create_index(
            "ix_rule_executions_rule_created_at",
            "rule_executions",
            ["rule_id", "created_at"],
        )

    if not inspector.has_table("task_events"):
        op.create_table(
            "task_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("event_type", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"]),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_task_events_org_id"), "task_events", ["org_id"])
        op.create_index(op.f("ix_task_events_actor_user_id"), "task_events", ["actor_user_id"])
        op.create_index(op.f("ix_task_events_event_type"), "task_events", ["event_type"])
        op.create_index(
            "ix_task_events_project_created_at",
            "task_events",
            ["project_id", "created_at"],
        )
        op.create_index(
            "ix_task_events_task_created_at",
            "task_events",
            ["task_id", "created_at"],
        )


def downgrade() -> None:
    for table in (
        "task_events",
        "rule_executions",
        "tasks",
        "rule_templates",
        "rules",
        "task_templates",
        "workflows",
        "cards",
        "milestones",
        "task_types",
        "projects",
        "users",
        "organizations",
    ):
        op.drop_table(table)
