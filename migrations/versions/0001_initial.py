from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "user_settings",
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("mia_threshold_hrs", sa.Integer, nullable=False, server_default="24"),
        sa.Column("emergency_mode_enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("emergency_mode_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("emergency_mode_multiplier", sa.Integer, nullable=False, server_default="2"),
    )

    op.create_table(
        "checkins",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), index=True),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("streak_count", sa.Integer, nullable=False, server_default="1"),
    )

    op.create_table(
        "emergency_contacts",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("is_confirmed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("confirmation_token", sa.String(length=64), nullable=True, unique=True, index=True),
        sa.Column("confirmation_expires", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "email"),
    )

    op.create_table(
        "last_words",
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("delivery_threshold", sa.Integer, nullable=False, server_default="48"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "mia_notification_state",
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("pre_alert_for_checkin_id", sa.Integer, nullable=True),
        sa.Column("emergency_for_checkin_id", sa.Integer, nullable=True),
        sa.Column("last_words_for_checkin_id", sa.Integer, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "alert_deliveries",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, nullable=False, index=True),
        sa.Column("checkin_id", sa.Integer, nullable=False, index=True),
        sa.Column("contact_id", sa.Integer, nullable=False),
        sa.Column(
            "type",
            sa.Enum("EMERGENCY_EMAIL", "EMERGENCY_SMS", "LAST_WORDS_EMAIL", name="alerttype"),
            nullable=False,
        ),
        sa.Column("ok", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("checkin_id", "contact_id", "type"),
    )


def downgrade():
    op.drop_table("alert_deliveries")
    op.drop_table("mia_notification_state")
    op.drop_table("last_words")
    op.drop_table("emergency_contacts")
    op.drop_table("checkins")
    op.drop_table("user_settings")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS alerttype")
