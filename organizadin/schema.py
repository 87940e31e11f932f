"""
OrganizaDin database schema: tables, indexes, additive column migrations
and the seed data inserted on first run.
"""

CREATE_TABLES_SQL = """
-- User settings (single row, id = 1)
CREATE TABLE IF NOT EXISTS user_settings (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  theme TEXT DEFAULT 'dark' CHECK(theme IN ('dark', 'light')),
  monthly_income REAL DEFAULT 0,
  piggy_password TEXT,
  created_at TEXT DEFAULT (datetime('now')),
  updated_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS categories (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  icon TEXT,
  color TEXT,
  is_default INTEGER DEFAULT 0,
  created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS credit_cards (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  color TEXT,
  created_at TEXT DEFAULT (datetime('now'))
);

-- Real money movements (pix, debit, cash)
CREATE TABLE IF NOT EXISTS balance_transactions (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  amount REAL NOT NULL,
  description TEXT NOT NULL,
  date TEXT NOT NULL,
  type TEXT NOT NULL CHECK(type IN ('income', 'expense')),
  method TEXT NOT NULL CHECK(method IN ('pix', 'debit', 'cash')),
  notes TEXT,
  created_at TEXT DEFAULT (datetime('now')),
  updated_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS credit_purchases (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  total_amount REAL NOT NULL,
  description TEXT NOT NULL,
  date TEXT NOT NULL,
  card_id INTEGER NOT NULL,
  category_id INTEGER NOT NULL,
  installments INTEGER DEFAULT 1,
  is_recurring INTEGER DEFAULT 0,
  has_multiple_items INTEGER DEFAULT 0,
  image_uri TEXT,
  notes TEXT,
  created_at TEXT DEFAULT (datetime('now')),
  updated_at TEXT DEFAULT (datetime('now')),
  FOREIGN KEY (card_id) REFERENCES credit_cards(id) ON DELETE CASCADE,
  FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS purchase_items (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  purchase_id INTEGER NOT NULL,
  name TEXT NOT NULL,
  amount REAL NOT NULL,
  image_uri TEXT,
  FOREIGN KEY (purchase_id) REFERENCES credit_purchases(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS installments (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  purchase_id INTEGER NOT NULL,
  installment_number INTEGER NOT NULL,
  amount REAL NOT NULL,
  due_date TEXT NOT NULL,
  status TEXT DEFAULT 'pending' CHECK(status IN ('pending', 'paid')),
  paid_at TEXT,
  FOREIGN KEY (purchase_id) REFERENCES credit_purchases(id) ON DELETE CASCADE
);

-- Savings vaults ("piggies")
CREATE TABLE IF NOT EXISTS piggies (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  balance REAL DEFAULT 0,
  created_at TEXT DEFAULT (datetime('now')),
  updated_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS piggy_transactions (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  piggy_id INTEGER NOT NULL,
  amount REAL NOT NULL,
  type TEXT NOT NULL CHECK(type IN ('deposit', 'withdraw', 'transfer_in', 'transfer_out')),
  description TEXT NOT NULL,
  date TEXT NOT NULL,
  related_piggy_id INTEGER,
  created_at TEXT DEFAULT (datetime('now')),
  FOREIGN KEY (piggy_id) REFERENCES piggies(id) ON DELETE CASCADE,
  FOREIGN KEY (related_piggy_id) REFERENCES piggies(id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_balance_transactions_date ON balance_transactions(date);
CREATE INDEX IF NOT EXISTS idx_balance_transactions_type ON balance_transactions(type);
CREATE INDEX IF NOT EXISTS idx_credit_purchases_date ON credit_purchases(date);
CREATE INDEX IF NOT EXISTS idx_credit_purchases_card ON credit_purchases(card_id);
CREATE INDEX IF NOT EXISTS idx_credit_purchases_category ON credit_purchases(category_id);
CREATE INDEX IF NOT EXISTS idx_installments_due_date ON installments(due_date);
CREATE INDEX IF NOT EXISTS idx_installments_status ON installments(status);
CREATE INDEX IF NOT EXISTS idx_piggy_transactions_piggy ON piggy_transactions(piggy_id);
CREATE INDEX IF NOT EXISTS idx_piggy_transactions_date ON piggy_transactions(date);
"""

# (table, column, type, default SQL literal or None)
# Columns added after the first public release; older databases lack them.
COLUMN_MIGRATIONS = (
    ("categories", "is_default", "INTEGER", "0"),
    ("credit_cards", "color", "TEXT", None),
    ("balance_transactions", "notes", "TEXT", None),
    ("credit_purchases", "is_recurring", "INTEGER", "0"),
    ("credit_purchases", "has_multiple_items", "INTEGER", "0"),
    ("credit_purchases", "image_uri", "TEXT", None),
    ("credit_purchases", "notes", "TEXT", None),
    ("purchase_items", "image_uri", "TEXT", None),
    ("installments", "paid_at", "TEXT", None),
    ("piggy_transactions", "related_piggy_id", "INTEGER", None),
)

DEFAULT_CARD_COLOR = "#607D8B"

DEFAULT_CATEGORIES = (
    ("Alimentação", "🍔", "#FF9800"),
    ("Casa", "🏠", "#795548"),
    ("Transporte", "🚗", "#2196F3"),
    ("Lazer", "🎮", "#9C27B0"),
    ("Saúde", "💊", "#F44336"),
    ("Compras", "🛒", "#E91E63"),
    ("Assinaturas", "📺", "#673AB7"),
    ("Outros", "📦", "#607D8B"),
)

FALLBACK_CATEGORY_NAME = "Outros"

INSERT_DEFAULT_SETTINGS_SQL = (
    "INSERT OR IGNORE INTO user_settings (id, theme, monthly_income) VALUES (1, 'dark', 0)"
)

# Tables the query facade may write to. user_settings is update-only.
DATA_TABLES = (
    "balance_transactions",
    "credit_purchases",
    "purchase_items",
    "installments",
    "piggies",
    "piggy_transactions",
    "credit_cards",
    "categories",
)
UPDATABLE_TABLES = DATA_TABLES + ("user_settings",)
