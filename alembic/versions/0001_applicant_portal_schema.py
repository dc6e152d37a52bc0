"""applicant portal schema

Revision ID: 0001_applicant_portal_schema
Revises:
Create Date: 2026-01-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_applicant_portal_schema"
down_revision = None
branch_labels = None
depends_on = None

# Identity recorded for webhook-driven changes (settings.WEBHOOK_ACTOR_ID)
SYSTEM_ACTOR_ID = "00000000-0000-0000-0000-000000000001"


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS profiles (
            id uuid PRIMARY KEY,
            email text NOT NULL DEFAULT '',
            full_name text,
            role text NOT NULL DEFAULT 'applicant'
                CHECK (role IN ('applicant', 'reviewer', 'admin')),
            created_at timestamptz NOT NULL DEFAULT now()
        );

        CREATE TABLE IF NOT EXISTS applications (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id uuid NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            current_status text NOT NULL DEFAULT 'draft'
                CHECK (current_status IN ('draft', 'submitted', 'payment_received', 'in_review', 'decision_released')),

            first_name text,
            last_name text,
            date_of_birth date,
            high_school text,
            gpa varchar(16),
            country text,
            state text,
            class_year text CHECK (class_year IS NULL OR class_year IN ('2025', '2026', '2027', '2028', '2029')),
            applying_for_financial_aid boolean,
            financial_circumstances_overview text CHECK (char_length(financial_circumstances_overview) <= 5000),
            financial_documentation_consent text CHECK (char_length(financial_documentation_consent) <= 5000),
            payment_certification text CHECK (char_length(payment_certification) <= 5000),

            payment_method text CHECK (payment_method IS NULL OR payment_method IN ('attestation', 'processor')),
            payment_verified boolean NOT NULL DEFAULT false,
            payment_verified_at timestamptz,
            payment_verified_by uuid REFERENCES profiles(id),
            processor_payment_id text,
            processor_status text CHECK (processor_status IS NULL OR processor_status IN ('pending', 'succeeded', 'failed')),

            decision text CHECK (decision IS NULL OR decision IN ('accepted', 'rejected')),
            decision_released_at timestamptz,

            version integer NOT NULL DEFAULT 1,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now(),

            CONSTRAINT released_requires_decision
                CHECK (current_status <> 'decision_released' OR decision IS NOT NULL),
            CONSTRAINT verified_has_timestamp
                CHECK (NOT payment_verified OR payment_verified_at IS NOT NULL)
        );

        CREATE TABLE IF NOT EXISTS application_documents (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            application_id uuid NOT NULL REFERENCES applications(id) ON DELETE CASCADE,
            file_path text NOT NULL,
            file_name text NOT NULL,
            file_type text NOT NULL CHECK (file_type IN ('application', 'supporting_document')),
            uploaded_at timestamptz NOT NULL DEFAULT now()
        );

        CREATE TABLE IF NOT EXISTS application_status_history (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            application_id uuid NOT NULL REFERENCES applications(id) ON DELETE CASCADE,
            old_status text,
            new_status text NOT NULL,
            changed_by uuid NOT NULL,
            reason text NOT NULL DEFAULT 'guarded' CHECK (reason IN ('guarded', 'admin_override')),
            changed_at timestamptz NOT NULL DEFAULT clock_timestamp()
        );

        CREATE TABLE IF NOT EXISTS reviewer_assignments (
            application_id uuid NOT NULL REFERENCES applications(id) ON DELETE CASCADE,
            reviewer_id uuid NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            assigned_at timestamptz NOT NULL DEFAULT now(),
            PRIMARY KEY (application_id, reviewer_id)
        );
        """
    )

    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_applications_one_active_per_user
            ON applications (user_id)
            WHERE current_status <> 'decision_released';

        CREATE INDEX IF NOT EXISTS idx_applications_status ON applications (current_status);
        CREATE INDEX IF NOT EXISTS idx_applications_user_payment_status
            ON applications (user_id, current_status, payment_verified);
        CREATE INDEX IF NOT EXISTS idx_applications_processor_payment_id
            ON applications (processor_payment_id) WHERE processor_payment_id IS NOT NULL;
        CREATE INDEX IF NOT EXISTS idx_application_documents_application
            ON application_documents (application_id);
        CREATE UNIQUE INDEX IF NOT EXISTS uq_application_documents_type
            ON application_documents (application_id, file_type);
        CREATE INDEX IF NOT EXISTS idx_status_history_application
            ON application_status_history (application_id, changed_at);
        CREATE INDEX IF NOT EXISTS idx_reviewer_assignments_reviewer
            ON reviewer_assignments (reviewer_id);
        """
    )

    # updated_at maintenance
    op.execute(
        """
        CREATE OR REPLACE FUNCTION set_updated_at() RETURNS trigger
        LANGUAGE plpgsql AS $$
        BEGIN
            NEW.updated_at := now();
            RETURN NEW;
        END;
        $$;

        DROP TRIGGER IF EXISTS trg_applications_updated_at ON applications;
        CREATE TRIGGER trg_applications_updated_at
            BEFORE UPDATE ON applications
            FOR EACH ROW EXECUTE FUNCTION set_updated_at();
        """
    )

    # history is append-only
    op.execute(
        """
        CREATE OR REPLACE FUNCTION forbid_history_mutation() RETURNS trigger
        LANGUAGE plpgsql AS $$
        BEGIN
            RAISE EXCEPTION 'application_status_history is append-only'
                USING ERRCODE = 'insufficient_privilege';
        END;
        $$;

        DROP TRIGGER IF EXISTS trg_status_history_append_only ON application_status_history;
        CREATE TRIGGER trg_status_history_append_only
            BEFORE UPDATE OR DELETE ON application_status_history
            FOR EACH ROW EXECUTE FUNCTION forbid_history_mutation();
        """
    )

    # row-level security keyed on the per-transaction app.user_id
    op.execute(
        """
        CREATE OR REPLACE FUNCTION portal_actor() RETURNS uuid
        LANGUAGE sql STABLE AS $$
            SELECT nullif(current_setting('app.user_id', true), '')::uuid
        $$;

        CREATE OR REPLACE FUNCTION portal_is_admin() RETURNS boolean
        LANGUAGE sql STABLE SECURITY DEFINER AS $$
            SELECT EXISTS (SELECT 1 FROM profiles WHERE id = portal_actor() AND role = 'admin')
        $$;

        CREATE OR REPLACE FUNCTION portal_is_assigned(app_id uuid) RETURNS boolean
        LANGUAGE sql STABLE SECURITY DEFINER AS $$
            SELECT EXISTS (
                SELECT 1 FROM reviewer_assignments
                WHERE application_id = app_id AND reviewer_id = portal_actor()
            )
        $$;

        ALTER TABLE applications ENABLE ROW LEVEL SECURITY;
        ALTER TABLE application_documents ENABLE ROW LEVEL SECURITY;
        ALTER TABLE application_status_history ENABLE ROW LEVEL SECURITY;
        ALTER TABLE reviewer_assignments ENABLE ROW LEVEL SECURITY;

        DROP POLICY IF EXISTS applications_owner ON applications;
        CREATE POLICY applications_owner ON applications
            USING (user_id = portal_actor())
            WITH CHECK (user_id = portal_actor());

        DROP POLICY IF EXISTS applications_reviewer ON applications;
        CREATE POLICY applications_reviewer ON applications
            USING (portal_is_assigned(id));

        DROP POLICY IF EXISTS applications_admin ON applications;
        CREATE POLICY applications_admin ON applications
            USING (portal_is_admin())
            WITH CHECK (portal_is_admin());

        DROP POLICY IF EXISTS documents_visible ON application_documents;
        CREATE POLICY documents_visible ON application_documents
            USING (
                EXISTS (
                    SELECT 1 FROM applications a
                    WHERE a.id = application_id
                      AND (a.user_id = portal_actor() OR portal_is_assigned(a.id) OR portal_is_admin())
                )
            );

        DROP POLICY IF EXISTS history_visible ON application_status_history;
        CREATE POLICY history_visible ON application_status_history
            USING (
                EXISTS (
                    SELECT 1 FROM applications a
                    WHERE a.id = application_id
                      AND (a.user_id = portal_actor() OR portal_is_assigned(a.id) OR portal_is_admin())
                )
            );

        DROP POLICY IF EXISTS assignments_visible ON reviewer_assignments;
        CREATE POLICY assignments_visible ON reviewer_assignments
            USING (reviewer_id = portal_actor() OR portal_is_admin())
            WITH CHECK (portal_is_admin());
        """
    )

    op.execute(
        f"""
        INSERT INTO profiles (id, email, full_name, role)
        VALUES ('{SYSTEM_ACTOR_ID}', 'payments@system.local', 'Payment webhook', 'admin')
        ON CONFLICT (id) DO NOTHING;
        """
    )


def downgrade() -> None:
    op.execute(
        """
        DROP TABLE IF EXISTS reviewer_assignments;
        DROP TABLE IF EXISTS application_status_history;
        DROP TABLE IF EXISTS application_documents;
        DROP TABLE IF EXISTS applications;
        DROP TABLE IF EXISTS profiles;
        DROP FUNCTION IF EXISTS portal_is_assigned(uuid);
        DROP FUNCTION IF EXISTS portal_is_admin();
        DROP FUNCTION IF EXISTS portal_actor();
        DROP FUNCTION IF EXISTS forbid_history_mutation();
        DROP FUNCTION IF EXISTS set_updated_at();
        """
    )
