"""Baseline migration - tenants, clients, sessions, uploads and email outbox

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-10-15

Creates every table of the document portal.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


UPDATED_AT_TABLES = (
    'clients',
    'document_requests',
    'request_templates',
    'submission_sessions',
    'email_outbox',
)


def upgrade() -> None:
    """Create portal tables."""

    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')  # For gen_random_uuid()

    # ==========================================================================
    # Tenants
    # ==========================================================================
    op.execute('''
        CREATE TABLE organizations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(255) NOT NULL,
            slug VARCHAR(100) UNIQUE NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            email VARCHAR(255) UNIQUE NOT NULL,
            display_name VARCHAR(255) NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT true,
            token_version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    # ==========================================================================
    # Clients & document requests
    # ==========================================================================
    op.execute('''
        CREATE TABLE clients (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            name VARCHAR(255) NOT NULL,
            email VARCHAR(255),
            active BOOLEAN NOT NULL DEFAULT true,
            portal_enabled BOOLEAN NOT NULL DEFAULT true,
            due_day_of_month INTEGER NOT NULL DEFAULT 25,
            due_timezone VARCHAR(64) NOT NULL DEFAULT 'Africa/Johannesburg',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_clients_due_day_range CHECK (due_day_of_month BETWEEN 1 AND 31)
        )
    ''')
    op.execute('CREATE INDEX idx_clients_org ON clients(organization_id)')

    op.execute('''
        CREATE TABLE document_requests (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
            title VARCHAR(255) NOT NULL,
            description TEXT,
            required BOOLEAN NOT NULL DEFAULT true,
            active BOOLEAN NOT NULL DEFAULT true,
            sort_order INTEGER NOT NULL DEFAULT 0,
            max_files INTEGER NOT NULL DEFAULT 1,
            allowed_mime_types JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_document_requests_max_files_positive CHECK (max_files >= 1)
        )
    ''')
    op.execute('''
        CREATE INDEX idx_document_requests_client
        ON document_requests(organization_id, client_id, active)
    ''')

    # ==========================================================================
    # Recurring templates
    # ==========================================================================
    op.execute('''
        CREATE TABLE request_templates (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
            name VARCHAR(255) NOT NULL,
            enabled BOOLEAN NOT NULL DEFAULT true,
            frequency VARCHAR(20) NOT NULL DEFAULT 'monthly',
            silent_auto_send BOOLEAN NOT NULL DEFAULT false,
            start_next_month BOOLEAN NOT NULL DEFAULT false,
            due_day_of_month INTEGER,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_request_templates_due_day_range
                CHECK (due_day_of_month IS NULL OR due_day_of_month BETWEEN 1 AND 31)
        )
    ''')
    op.execute('CREATE INDEX idx_request_templates_enabled ON request_templates(enabled)')
    op.execute('''
        CREATE INDEX idx_request_templates_client
        ON request_templates(organization_id, client_id)
    ''')

    op.execute('''
        CREATE TABLE request_template_document_requests (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            request_template_id UUID NOT NULL REFERENCES request_templates(id) ON DELETE CASCADE,
            document_request_id UUID NOT NULL REFERENCES document_requests(id) ON DELETE CASCADE,
            position INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT uq_template_document UNIQUE (request_template_id, document_request_id)
        )
    ''')

    # ==========================================================================
    # Submission sessions
    # ==========================================================================
    op.execute('''
        CREATE TABLE submission_sessions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
            request_template_id UUID REFERENCES request_templates(id) ON DELETE SET NULL,
            replaces_session_id UUID REFERENCES submission_sessions(id) ON DELETE SET NULL,
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'OPEN',
            public_token VARCHAR(255) NOT NULL,
            opened_at TIMESTAMPTZ NOT NULL,
            due_on DATE NOT NULL,
            finalized_at TIMESTAMPTZ,
            expires_at TIMESTAMPTZ,
            sent_via VARCHAR(20) NOT NULL DEFAULT 'manual',
            request_sent_at TIMESTAMPTZ,
            reminder_14d_sent_at TIMESTAMPTZ,
            accepted_confirmation_sent_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_submission_sessions_public_token UNIQUE (public_token)
        )
    ''')
    # At most one OPEN session per (client, template)
    op.execute('''
        CREATE UNIQUE INDEX uq_submission_sessions_open_template
        ON submission_sessions (client_id, request_template_id)
        WHERE status = 'OPEN' AND request_template_id IS NOT NULL
    ''')
    op.execute('''
        CREATE INDEX idx_submission_sessions_client
        ON submission_sessions(organization_id, client_id, status)
    ''')
    op.execute('CREATE INDEX idx_submission_sessions_due ON submission_sessions(status, due_on)')

    op.execute('''
        CREATE TABLE submission_session_document_requests (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
            submission_session_id UUID NOT NULL REFERENCES submission_sessions(id) ON DELETE CASCADE,
            document_request_id UUID NOT NULL REFERENCES document_requests(id) ON DELETE CASCADE,
            position INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT uq_session_document UNIQUE (submission_session_id, document_request_id)
        )
    ''')

    # ==========================================================================
    # Uploads
    # ==========================================================================
    op.execute('''
        CREATE TABLE uploads (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
            submission_session_id UUID NOT NULL REFERENCES submission_sessions(id) ON DELETE CASCADE,
            document_request_id UUID NOT NULL REFERENCES document_requests(id) ON DELETE CASCADE,
            original_filename VARCHAR(255) NOT NULL,
            storage_key VARCHAR(512) NOT NULL,
            mime_type VARCHAR(100),
            size_bytes INTEGER,
            status VARCHAR(20) NOT NULL DEFAULT 'PENDING',
            denial_reason TEXT,
            reviewed_at TIMESTAMPTZ,
            reviewed_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            viewed_at TIMESTAMPTZ,
            uploaded_at TIMESTAMPTZ,
            delete_after_at TIMESTAMPTZ,
            deleted_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_uploads_denial_reason_matches_status CHECK (
                (status = 'DENIED' AND denial_reason IS NOT NULL)
                OR (status <> 'DENIED' AND denial_reason IS NULL)
            )
        )
    ''')
    op.execute('''
        CREATE INDEX idx_uploads_session
        ON uploads(submission_session_id, document_request_id)
    ''')
    op.execute('CREATE INDEX idx_uploads_org_status ON uploads(organization_id, status)')
    op.execute('CREATE INDEX idx_uploads_retention ON uploads(delete_after_at)')

    # ==========================================================================
    # Email outbox & audit
    # ==========================================================================
    op.execute('''
        CREATE TABLE email_outbox (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            client_id UUID REFERENCES clients(id) ON DELETE SET NULL,
            submission_session_id UUID REFERENCES submission_sessions(id) ON DELETE SET NULL,
            to_email VARCHAR(255) NOT NULL,
            template VARCHAR(64) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}'::jsonb,
            idempotency_key VARCHAR(255) NOT NULL,
            run_after TIMESTAMPTZ NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'PENDING',
            attempt_count INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            sent_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_email_outbox_idempotency_key UNIQUE (idempotency_key)
        )
    ''')
    op.execute('CREATE INDEX idx_email_outbox_pending ON email_outbox(status, run_after)')

    op.execute('''
        CREATE TABLE audit_events (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            event_type VARCHAR(64) NOT NULL,
            actor_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            target_type VARCHAR(50),
            target_id UUID,
            details JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_audit_events_org ON audit_events(organization_id, created_at)')

    # ==========================================================================
    # Trigger: Auto-update updated_at on row modification
    # ==========================================================================
    op.execute('''
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$ language 'plpgsql'
    ''')
    for table in UPDATED_AT_TABLES:
        op.execute(f'''
            CREATE TRIGGER update_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW
                EXECUTE FUNCTION update_updated_at_column()
        ''')


def downgrade() -> None:
    """Drop all portal tables."""
    for table in UPDATED_AT_TABLES:
        op.execute(f'DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}')
    op.execute('DROP FUNCTION IF EXISTS update_updated_at_column()')

    # Reverse order (respecting foreign keys); indexes go with their tables
    op.execute('DROP TABLE IF EXISTS audit_events')
    op.execute('DROP TABLE IF EXISTS email_outbox')
    op.execute('DROP TABLE IF EXISTS uploads')
    op.execute('DROP TABLE IF EXISTS submission_session_document_requests')
    op.execute('DROP TABLE IF EXISTS submission_sessions')
    op.execute('DROP TABLE IF EXISTS request_template_document_requests')
    op.execute('DROP TABLE IF EXISTS request_templates')
    op.execute('DROP TABLE IF EXISTS document_requests')
    op.execute('DROP TABLE IF EXISTS clients')
    op.execute('DROP TABLE IF EXISTS users')
    op.execute('DROP TABLE IF EXISTS organizations')
