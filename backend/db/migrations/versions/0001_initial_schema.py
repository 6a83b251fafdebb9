"""Initial schema for the vesting-event settlement engine."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from alembic import op

logger = logging.getLogger(__name__)

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


ENUM_DDL: tuple[str, ...] = (
    "CREATE TYPE plan_type_enum AS ENUM ('LTIP_RSU', 'LTIP_RSA', 'ESOP');",
    "CREATE TYPE vesting_schedule_type_enum AS ENUM ('time_based', 'performance_based', 'hybrid');",
    (
        "CREATE TYPE grant_status_enum AS ENUM "
        "('draft', 'pending_signature', 'active', 'completed', 'forfeited', 'cancelled');"
    ),
    "CREATE TYPE vesting_event_type_enum AS ENUM ('cliff', 'time_based', 'performance', 'acceleration');",
    (
        "CREATE TYPE vesting_event_status_enum AS ENUM "
        "('pending', 'due', 'vested', 'transferred', 'exercised', 'forfeited', 'cancelled');"
    ),
    "CREATE TYPE portfolio_type_enum AS ENUM ('company_reserved', 'employee_vested');",
    "CREATE TYPE transfer_type_enum AS ENUM ('vesting', 'exercise');",
    "CREATE TYPE transfer_status_enum AS ENUM ('pending', 'transferred', 'cancelled');",
)

TABLE_DDL: tuple[str, ...] = (
    """
    CREATE TABLE companies (
        id UUID NOT NULL DEFAULT gen_random_uuid(),
        company_name_en TEXT NOT NULL,
        tadawul_symbol TEXT,
        status TEXT NOT NULL DEFAULT 'active',
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_companies PRIMARY KEY (id),
        CONSTRAINT ck_companies_name_not_blank CHECK (length(btrim(company_name_en)) > 0)
    );
    """,
    """
    CREATE TABLE employees (
        id UUID NOT NULL DEFAULT gen_random_uuid(),
        company_id UUID NOT NULL,
        employee_number TEXT NOT NULL,
        first_name_en TEXT,
        last_name_en TEXT,
        first_name_ar TEXT,
        last_name_ar TEXT,
        employment_status TEXT NOT NULL DEFAULT 'active',
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_employees PRIMARY KEY (id),
        CONSTRAINT uq_employees_company_number UNIQUE (company_id, employee_number),
        CONSTRAINT fk_employees_company FOREIGN KEY (company_id) REFERENCES companies (id) ON DELETE RESTRICT
    );
    """,
    """
    CREATE TABLE incentive_plans (
        id UUID NOT NULL DEFAULT gen_random_uuid(),
        company_id UUID NOT NULL,
        plan_name_en TEXT NOT NULL,
        plan_code TEXT NOT NULL,
        plan_type plan_type_enum NOT NULL,
        vesting_schedule_type vesting_schedule_type_enum NOT NULL DEFAULT 'time_based',
        exercise_price NUMERIC(18,6),
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_incentive_plans PRIMARY KEY (id),
        CONSTRAINT uq_incentive_plans_company_code UNIQUE (company_id, plan_code),
        CONSTRAINT fk_incentive_plans_company FOREIGN KEY (company_id) REFERENCES companies (id) ON DELETE RESTRICT,
        CONSTRAINT ck_incentive_plans_exercise_price_nonneg CHECK (exercise_price IS NULL OR exercise_price >= 0)
    );
    """,
    """
    CREATE TABLE grants (
        id UUID NOT NULL DEFAULT gen_random_uuid(),
        grant_number TEXT NOT NULL,
        company_id UUID NOT NULL,
        plan_id UUID NOT NULL,
        employee_id UUID NOT NULL,
        total_shares NUMERIC(20,4) NOT NULL,
        vested_shares NUMERIC(20,4) NOT NULL DEFAULT 0,
        exercised_shares NUMERIC(20,4) NOT NULL DEFAULT 0,
        forfeited_shares NUMERIC(20,4) NOT NULL DEFAULT 0,
        remaining_unvested_shares NUMERIC(20,4),
        status grant_status_enum NOT NULL DEFAULT 'draft',
        exercise_price NUMERIC(18,6),
        vesting_schedule_id UUID,
        employee_acceptance_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_grants PRIMARY KEY (id),
        CONSTRAINT uq_grants_grant_number UNIQUE (grant_number),
        CONSTRAINT fk_grants_company FOREIGN KEY (company_id) REFERENCES companies (id) ON DELETE RESTRICT,
        CONSTRAINT fk_grants_plan FOREIGN KEY (plan_id) REFERENCES incentive_plans (id) ON DELETE RESTRICT,
        CONSTRAINT fk_grants_employee FOREIGN KEY (employee_id) REFERENCES employees (id) ON DELETE RESTRICT,
        CONSTRAINT ck_grants_total_shares_pos CHECK (total_shares > 0),
        CONSTRAINT ck_grants_vested_nonneg CHECK (vested_shares >= 0),
        CONSTRAINT ck_grants_exercised_nonneg CHECK (exercised_shares >= 0),
        CONSTRAINT ck_grants_forfeited_nonneg CHECK (forfeited_shares >= 0),
        CONSTRAINT ck_grants_remaining_nonneg CHECK (remaining_unvested_shares IS NULL OR remaining_unvested_shares >= 0),
        CONSTRAINT ck_grants_exercise_price_nonneg CHECK (exercise_price IS NULL OR exercise_price >= 0)
    );
    """,
    """
    CREATE TABLE performance_metrics (
        id UUID NOT NULL DEFAULT gen_random_uuid(),
        company_id UUID NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        metric_type TEXT,
        unit_of_measure TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_performance_metrics PRIMARY KEY (id),
        CONSTRAINT fk_performance_metrics_company FOREIGN KEY (company_id) REFERENCES companies (id) ON DELETE RESTRICT,
        CONSTRAINT ck_performance_metrics_name_not_blank CHECK (length(btrim(name)) > 0)
    );
    """,
    """
    CREATE TABLE grant_performance_metrics (
        id UUID NOT NULL DEFAULT gen_random_uuid(),
        company_id UUID NOT NULL,
        grant_id UUID NOT NULL,
        performance_metric_id UUID NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_grant_performance_metrics PRIMARY KEY (id),
        CONSTRAINT uq_grant_performance_metrics_grant_metric UNIQUE (grant_id, performance_metric_id),
        CONSTRAINT fk_grant_performance_metrics_company FOREIGN KEY (company_id) REFERENCES companies (id) ON DELETE RESTRICT,
        CONSTRAINT fk_grant_performance_metrics_grant FOREIGN KEY (grant_id) REFERENCES grants (id) ON DELETE CASCADE,
        CONSTRAINT fk_grant_performance_metrics_metric FOREIGN KEY (performance_metric_id)
            REFERENCES performance_metrics (id) ON DELETE RESTRICT
    );
    """,
    """
    CREATE TABLE vesting_milestones (
        id UUID NOT NULL DEFAULT gen_random_uuid(),
        vesting_schedule_id UUID NOT NULL,
        sequence_order INTEGER NOT NULL,
        performance_metric_id UUID,
        target_value NUMERIC(24,6),
        actual_value NUMERIC(24,6),
        is_achieved BOOLEAN,
        achieved_at TIMESTAMPTZ,
        CONSTRAINT pk_vesting_milestones PRIMARY KEY (id),
        CONSTRAINT uq_vesting_milestones_schedule_sequence UNIQUE (vesting_schedule_id, sequence_order),
        CONSTRAINT fk_vesting_milestones_metric FOREIGN KEY (performance_metric_id)
            REFERENCES performance_metrics (id) ON DELETE RESTRICT,
        CONSTRAINT ck_vesting_milestones_sequence_pos CHECK (sequence_order >= 1)
    );
    """,
    """
    CREATE TABLE vesting_events (
        id UUID NOT NULL DEFAULT gen_random_uuid(),
        grant_id UUID NOT NULL,
        employee_id UUID NOT NULL,
        company_id UUID NOT NULL,
        event_type vesting_event_type_enum NOT NULL,
        sequence_number INTEGER NOT NULL,
        vesting_date DATE NOT NULL,
        shares_to_vest NUMERIC(20,4) NOT NULL,
        cumulative_shares_vested NUMERIC(20,4) NOT NULL DEFAULT 0,
        status vesting_event_status_enum NOT NULL DEFAULT 'pending',
        processed_at TIMESTAMPTZ,
        processed_by TEXT,
        exercise_price NUMERIC(18,6),
        fair_market_value NUMERIC(18,6),
        total_exercise_cost NUMERIC(24,2),
        performance_condition_met BOOLEAN NOT NULL DEFAULT FALSE,
        performance_notes TEXT,
        portfolio_transaction_id UUID,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_vesting_events PRIMARY KEY (id),
        CONSTRAINT uq_vesting_events_grant_sequence UNIQUE (grant_id, sequence_number),
        CONSTRAINT fk_vesting_events_grant FOREIGN KEY (grant_id) REFERENCES grants (id) ON DELETE RESTRICT,
        CONSTRAINT fk_vesting_events_employee FOREIGN KEY (employee_id) REFERENCES employees (id) ON DELETE RESTRICT,
        CONSTRAINT fk_vesting_events_company FOREIGN KEY (company_id) REFERENCES companies (id) ON DELETE RESTRICT,
        CONSTRAINT ck_vesting_events_shares_pos CHECK (shares_to_vest > 0),
        CONSTRAINT ck_vesting_events_sequence_pos CHECK (sequence_number >= 1),
        CONSTRAINT ck_vesting_events_exercise_cost_nonneg CHECK (total_exercise_cost IS NULL OR total_exercise_cost >= 0)
    );
    """,
    """
    CREATE TABLE portfolios (
        id UUID NOT NULL DEFAULT gen_random_uuid(),
        portfolio_type portfolio_type_enum NOT NULL,
        company_id UUID NOT NULL,
        employee_id UUID,
        total_shares NUMERIC(20,4) NOT NULL DEFAULT 0,
        available_shares NUMERIC(20,4) NOT NULL DEFAULT 0,
        locked_shares NUMERIC(20,4) NOT NULL DEFAULT 0,
        portfolio_number TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_portfolios PRIMARY KEY (id),
        CONSTRAINT uq_portfolios_company_number UNIQUE (company_id, portfolio_number),
        CONSTRAINT fk_portfolios_company FOREIGN KEY (company_id) REFERENCES companies (id) ON DELETE RESTRICT,
        CONSTRAINT fk_portfolios_employee FOREIGN KEY (employee_id) REFERENCES employees (id) ON DELETE RESTRICT,
        CONSTRAINT ck_portfolios_total_nonneg CHECK (total_shares >= 0),
        CONSTRAINT ck_portfolios_available_nonneg CHECK (available_shares >= 0),
        CONSTRAINT ck_portfolios_locked_nonneg CHECK (locked_shares >= 0),
        CONSTRAINT ck_portfolios_available_le_total CHECK (available_shares <= total_shares),
        CONSTRAINT ck_portfolios_owner_matches_type CHECK (
            (portfolio_type = 'company_reserved' AND employee_id IS NULL)
            OR (portfolio_type = 'employee_vested' AND employee_id IS NOT NULL)
        )
    );
    """,
    """
    CREATE TABLE share_transfers (
        id UUID NOT NULL DEFAULT gen_random_uuid(),
        transfer_number TEXT NOT NULL,
        company_id UUID NOT NULL,
        grant_id UUID NOT NULL,
        employee_id UUID NOT NULL,
        vesting_event_id UUID,
        from_portfolio_id UUID NOT NULL,
        to_portfolio_id UUID NOT NULL,
        shares_transferred NUMERIC(20,4) NOT NULL,
        transfer_type transfer_type_enum NOT NULL,
        transfer_date DATE NOT NULL,
        status transfer_status_enum NOT NULL DEFAULT 'pending',
        processed_by_system BOOLEAN NOT NULL DEFAULT FALSE,
        initiated_by TEXT,
        notes TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_share_transfers PRIMARY KEY (id),
        CONSTRAINT uq_share_transfers_transfer_number UNIQUE (transfer_number),
        CONSTRAINT fk_share_transfers_company FOREIGN KEY (company_id) REFERENCES companies (id) ON DELETE RESTRICT,
        CONSTRAINT fk_share_transfers_grant FOREIGN KEY (grant_id) REFERENCES grants (id) ON DELETE RESTRICT,
        CONSTRAINT fk_share_transfers_employee FOREIGN KEY (employee_id) REFERENCES employees (id) ON DELETE RESTRICT,
        CONSTRAINT fk_share_transfers_vesting_event FOREIGN KEY (vesting_event_id)
            REFERENCES vesting_events (id) ON DELETE RESTRICT,
        CONSTRAINT fk_share_transfers_from_portfolio FOREIGN KEY (from_portfolio_id)
            REFERENCES portfolios (id) ON DELETE RESTRICT,
        CONSTRAINT fk_share_transfers_to_portfolio FOREIGN KEY (to_portfolio_id)
            REFERENCES portfolios (id) ON DELETE RESTRICT,
        CONSTRAINT ck_share_transfers_shares_pos CHECK (shares_transferred > 0),
        CONSTRAINT ck_share_transfers_distinct_portfolios CHECK (from_portfolio_id <> to_portfolio_id)
    );
    """,
)

INDEX_DDL: tuple[str, ...] = (
    "CREATE INDEX idx_employees_company_id ON employees USING btree (company_id);",
    "CREATE INDEX idx_grants_company_status ON grants USING btree (company_id, status);",
    "CREATE INDEX idx_grants_employee_id ON grants USING btree (employee_id);",
    "CREATE INDEX idx_vesting_events_company_status ON vesting_events USING btree (company_id, status);",
    "CREATE INDEX idx_vesting_events_company_vesting_date ON vesting_events USING btree (company_id, vesting_date);",
    "CREATE INDEX idx_vesting_events_employee_id ON vesting_events USING btree (employee_id);",
    (
        "CREATE UNIQUE INDEX uq_portfolios_company_reserved ON portfolios USING btree (company_id) "
        "WHERE portfolio_type = 'company_reserved';"
    ),
    (
        "CREATE UNIQUE INDEX uq_portfolios_employee_vested ON portfolios USING btree (company_id, employee_id) "
        "WHERE portfolio_type = 'employee_vested';"
    ),
    (
        "CREATE UNIQUE INDEX uq_share_transfers_active_vesting_event ON share_transfers USING btree (vesting_event_id) "
        "WHERE status <> 'cancelled';"
    ),
    "CREATE INDEX idx_share_transfers_company_status ON share_transfers USING btree (company_id, status);",
)

VIEW_DDL: tuple[str, ...] = (
    """
    CREATE VIEW v_orphaned_share_transfers AS
    SELECT
        st.id AS transfer_id,
        st.transfer_number,
        st.company_id,
        st.employee_id,
        st.vesting_event_id,
        st.transfer_type,
        st.status AS transfer_status,
        st.shares_transferred,
        ve.status AS event_status
    FROM share_transfers st
    LEFT JOIN vesting_events ve ON ve.id = st.vesting_event_id
    WHERE st.status <> 'cancelled'
      AND (
        ve.id IS NULL
        OR (st.transfer_type = 'vesting' AND ve.status <> 'transferred')
        OR (st.transfer_type = 'exercise' AND ve.status <> 'exercised')
      );
    """,
)


def _execute_all(statements: Sequence[str]) -> None:
    """Execute an ordered sequence of SQL statements."""

    for statement in statements:
        try:
            op.execute(statement)
        except Exception:
            logger.exception("Migration statement failed.")
            raise


def upgrade() -> None:
    """Apply the initial schema migration."""

    logger.info("Starting initial schema migration upgrade.")
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")
    _execute_all(ENUM_DDL)
    _execute_all(TABLE_DDL)
    _execute_all(INDEX_DDL)
    _execute_all(VIEW_DDL)
    logger.info("Completed initial schema migration upgrade.")


def downgrade() -> None:
    """Revert the initial schema migration."""

    logger.info("Starting initial schema migration downgrade.")
    _execute_all(
        (
            "DROP VIEW IF EXISTS v_orphaned_share_transfers;",
            "DROP TABLE IF EXISTS share_transfers;",
            "DROP TABLE IF EXISTS portfolios;",
            "DROP TABLE IF EXISTS vesting_events;",
            "DROP TABLE IF EXISTS vesting_milestones;",
            "DROP TABLE IF EXISTS grant_performance_metrics;",
            "DROP TABLE IF EXISTS performance_metrics;",
            "DROP TABLE IF EXISTS grants;",
            "DROP TABLE IF EXISTS incentive_plans;",
            "DROP TABLE IF EXISTS employees;",
            "DROP TABLE IF EXISTS companies;",
            "DROP TYPE IF EXISTS transfer_status_enum;",
            "DROP TYPE IF EXISTS transfer_type_enum;",
            "DROP TYPE IF EXISTS portfolio_type_enum;",
            "DROP TYPE IF EXISTS vesting_event_status_enum;",
            "DROP TYPE IF EXISTS vesting_event_type_enum;",
            "DROP TYPE IF EXISTS grant_status_enum;",
            "DROP TYPE IF EXISTS vesting_schedule_type_enum;",
            "DROP TYPE IF EXISTS plan_type_enum;",
        )
    )
    logger.info("Completed initial schema migration downgrade.")
