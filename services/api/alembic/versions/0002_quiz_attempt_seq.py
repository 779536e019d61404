"""quiz attempt sequence: one row per (profile, quiz, position)

Revision ID: 0002_quiz_attempt_seq
Revises: 0001_initial
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0002_quiz_attempt_seq"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("quiz_attempts") as batch:
        batch.add_column(sa.Column("attempt_seq", sa.Integer(), nullable=True))

    op.execute(
        """
        UPDATE quiz_attempts
        SET attempt_seq = (
            SELECT COUNT(*)
            FROM quiz_attempts AS prior
            WHERE prior.profile_id = quiz_attempts.profile_id
              AND prior.quiz_id = quiz_attempts.quiz_id
              AND (
                prior.completed_at < quiz_attempts.completed_at
                OR (
                  prior.completed_at = quiz_attempts.completed_at
                  AND prior.id <= quiz_attempts.id
                )
              )
        )
        """
    )

    with op.batch_alter_table("quiz_attempts") as batch:
        batch.alter_column(
            "attempt_seq",
            existing_type=sa.Integer(),
            nullable=False,
            server_default="1",
        )
        batch.create_unique_constraint(
            "uq_quiz_attempts_profile_quiz_seq",
            ["profile_id", "quiz_id", "attempt_seq"],
        )


def downgrade() -> None:
    with op.batch_alter_table("quiz_attempts") as batch:
        batch.drop_constraint("uq_quiz_attempts_profile_quiz_seq", type_="unique")
        batch.drop_column("attempt_seq")
