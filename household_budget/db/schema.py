"""SQLite schema definitions for the household budget system.

Money columns are TEXT holding two-decimal strings so they round-trip through
decimal.Decimal without float drift.
"""

SCHEMA_SQL = """
-- Connections (bank accounts, credit cards, the synthetic manual account)
CREATE TABLE IF NOT EXISTS connections (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    display_name TEXT,
    current_balance TEXT NOT NULL DEFAULT '0.00',
    is_on_budget INTEGER NOT NULL DEFAULT 1,
    account_type TEXT,  -- checking, savings, credit, investment, retirement
    last_synced_at TEXT
);

-- Transactions
CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,  -- "<connectionId>-<externalId>" for synced rows
    connection_id TEXT,
    date TEXT NOT NULL,
    name TEXT NOT NULL,
    amount TEXT NOT NULL,  -- signed: positive deposit, negative withdrawal
    category_type TEXT,
    category_id TEXT,  -- bill id or fund id
    income_month TEXT,  -- MM/YYYY, only for income
    is_split INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (connection_id) REFERENCES connections(id) ON DELETE CASCADE
);

-- Split sub-allocations of a transaction
CREATE TABLE IF NOT EXISTS transaction_splits (
    id TEXT PRIMARY KEY,
    transaction_id TEXT NOT NULL,
    label TEXT,
    amount TEXT NOT NULL,  -- unsigned; sign comes from the parent
    date TEXT NOT NULL,
    category_type TEXT,
    category_id TEXT,
    income_month TEXT,
    FOREIGN KEY (transaction_id) REFERENCES transactions(id) ON DELETE CASCADE
);

-- Bills, one set per month
CREATE TABLE IF NOT EXISTS bills (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    expected_amount TEXT NOT NULL,
    month TEXT,  -- MM/YYYY
    paid_amount TEXT,
    paid_date TEXT
);

-- Savings funds
CREATE TABLE IF NOT EXISTS funds (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL
);

-- Money moved into funds when a month is sealed (never updated)
CREATE TABLE IF NOT EXISTS fund_allocations (
    id TEXT PRIMARY KEY,
    fund_id TEXT NOT NULL,
    month TEXT NOT NULL,
    amount TEXT NOT NULL,
    FOREIGN KEY (fund_id) REFERENCES funds(id) ON DELETE CASCADE
);

-- Closed months
CREATE TABLE IF NOT EXISTS sealed_months (
    id TEXT PRIMARY KEY,
    month TEXT NOT NULL UNIQUE,
    sealed_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Fund display settings (one row per fund)
CREATE TABLE IF NOT EXISTS fund_settings (
    id TEXT PRIMARY KEY,
    fund_id TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    position TEXT NOT NULL,  -- left or right
    is_visible INTEGER NOT NULL DEFAULT 1,
    override_amount TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (fund_id) REFERENCES funds(id) ON DELETE CASCADE
);

-- Process-wide key/value settings
CREATE TABLE IF NOT EXISTS app_settings (
    id TEXT PRIMARY KEY,
    key TEXT NOT NULL UNIQUE,
    value TEXT NOT NULL
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_transactions_connection ON transactions(connection_id);
CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(category_type, category_id);
CREATE INDEX IF NOT EXISTS idx_transactions_income_month ON transactions(income_month);
CREATE INDEX IF NOT EXISTS idx_splits_transaction ON transaction_splits(transaction_id);
CREATE INDEX IF NOT EXISTS idx_splits_date ON transaction_splits(date);
CREATE INDEX IF NOT EXISTS idx_bills_month ON bills(month);
CREATE INDEX IF NOT EXISTS idx_fund_allocations_fund ON fund_allocations(fund_id);
"""
