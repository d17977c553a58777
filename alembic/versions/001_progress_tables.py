"""Progress engine tables.

Creates users, user_progress, badge_definitions, user_badges, referrals and
referral_reward_grants. Every idempotency guarantee of the engine rests on
the UNIQUE constraints created here.

Revision ID: 001_progress_tables
Revises: None
Create Date: 2026-10-16
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progress_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            email VARCHAR(320) UNIQUE,
            display_name VARCHAR(64),
            timezone VARCHAR(64),
            all_days_unlocked BOOLEAN NOT NULL DEFAULT false,
            coaching_purchased BOOLEAN NOT NULL DEFAULT false,
            is_admin BOOLEAN NOT NULL DEFAULT false,
            referral_code VARCHAR(16) UNIQUE,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Progress ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progress (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            day INTEGER NOT NULL CHECK (day >= 1),
            completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            selected_suggestion INTEGER,
            micro_decision_choice TEXT,
            reflection_answer TEXT,
            user_inputs JSONB,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_user_progress_user_day UNIQUE (user_id, day)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_progress_user_id
        ON user_progress(user_id)
    """)

    # --- Badge Definitions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_definitions (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(16) NOT NULL DEFAULT '',
            trigger_type VARCHAR(32) NOT NULL,
            trigger_config JSONB NOT NULL DEFAULT '{}',
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)

    # --- User Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badge_definitions(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_badges_user_badge UNIQUE (user_id, badge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_badges_user_id
        ON user_badges(user_id)
    """)

    # --- Referrals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS referrals (
            id BIGSERIAL PRIMARY KEY,
            referrer_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            referred_user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_referrals_referred_user UNIQUE (referred_user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_referrals_referrer_id
        ON referrals(referrer_id)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS referral_reward_grants (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            tier_slug VARCHAR(64) NOT NULL,
            granted_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_referral_grants_user_tier UNIQUE (user_id, tier_slug)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_referral_reward_grants_user_id
        ON referral_reward_grants(user_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS referral_reward_grants")
    op.execute("DROP TABLE IF EXISTS referrals")
    op.execute("DROP TABLE IF EXISTS user_badges")
    op.execute("DROP TABLE IF EXISTS badge_definitions")
    op.execute("DROP TABLE IF EXISTS user_progress")
    op.execute("DROP TABLE IF EXISTS users")
