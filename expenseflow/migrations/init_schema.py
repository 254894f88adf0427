"""Database schema initialization.

Contains all CREATE TABLE and CREATE INDEX statements for the ExpenseFlow
database.

Called by database.init_db() at application startup.
"""


def create_schema(conn, cursor):
    """Create all database tables and indexes.

    Args:
        conn: Database connection (for commit/rollback)
        cursor: Database cursor from get_cursor(conn)
    """
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS companies (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            country TEXT,
            currency TEXT NOT NULL DEFAULT 'USD',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            email TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'EMPLOYEE',
            manager_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            password_hash TEXT,
            is_active BOOLEAN DEFAULT TRUE,
            last_login TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT chk_user_role CHECK (role IN ('ADMIN', 'MANAGER', 'EMPLOYEE'))
        )
    ''')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_users_company_role ON users(company_id, role)')

    # ── Approval flows ──

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS approval_flows (
            id SERIAL PRIMARY KEY,
            company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            rule_type TEXT NOT NULL DEFAULT 'UNANIMOUS',
            percentage_threshold NUMERIC(5,2),
            specific_approver_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            is_active BOOLEAN DEFAULT TRUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT chk_flow_rule_type CHECK (
                rule_type IN ('UNANIMOUS', 'PERCENTAGE', 'SPECIFIC', 'HYBRID')),
            CONSTRAINT chk_flow_threshold CHECK (
                percentage_threshold IS NULL
                OR (percentage_threshold > 0 AND percentage_threshold <= 100))
        )
    ''')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_approval_flows_company ON approval_flows(company_id, is_active)')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS approval_flow_steps (
            id SERIAL PRIMARY KEY,
            flow_id INTEGER NOT NULL REFERENCES approval_flows(id) ON DELETE CASCADE,
            step_order INTEGER NOT NULL,
            role TEXT,
            specific_user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            UNIQUE (flow_id, step_order),
            CONSTRAINT chk_step_approver CHECK (
                (role IS NULL) <> (specific_user_id IS NULL))
        )
    ''')

    # ── Expenses ──

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS expenses (
            id SERIAL PRIMARY KEY,
            company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount NUMERIC(15,2) NOT NULL,
            currency TEXT NOT NULL,
            amount_in_company_currency NUMERIC(15,2),
            category TEXT NOT NULL,
            description TEXT,
            expense_date DATE NOT NULL,
            line_items JSONB DEFAULT '[]'::jsonb,
            status TEXT NOT NULL DEFAULT 'PENDING',
            flow_id INTEGER REFERENCES approval_flows(id) ON DELETE SET NULL,
            current_step INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT chk_expense_status CHECK (status IN ('PENDING', 'APPROVED', 'REJECTED'))
        )
    ''')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_expenses_user ON expenses(user_id)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_expenses_company_status ON expenses(company_id, status)')

    # ── Approval requests ──

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS approval_requests (
            id SERIAL PRIMARY KEY,
            expense_id INTEGER NOT NULL REFERENCES expenses(id) ON DELETE CASCADE,
            approver_id INTEGER NOT NULL REFERENCES users(id),
            step_order INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING',
            comment TEXT,
            decided_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (expense_id, step_order, approver_id),
            CONSTRAINT chk_request_status CHECK (status IN ('PENDING', 'APPROVED', 'REJECTED'))
        )
    ''')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_approval_requests_expense ON approval_requests(expense_id, step_order)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_approval_requests_approver ON approval_requests(approver_id, status)')
