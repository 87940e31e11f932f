"""
OrganizaDin Configuration Manager
Centralizes path definitions, environment variable loading and fixed limits.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# 1. Locate the Project Root
# Assumes structure: project/organizadin/config.py
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# 2. Load .env file
load_dotenv(PROJECT_ROOT / ".env")

# 3. Define Default Paths
DEFAULT_DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DB_PATH = DEFAULT_DATA_DIR / "organizadin.db"
DEFAULT_STORE_PATH = DEFAULT_DATA_DIR / "secure_store.json"

# 4. Export Configuration
# Priority: Environment Variable -> .env file -> Default Paths
DB_PATH = os.getenv("ORGANIZADIN_DB_PATH", str(DEFAULT_DB_PATH))
STORE_PATH = os.getenv("ORGANIZADIN_STORE_PATH", str(DEFAULT_STORE_PATH))

# ============ Compiled-in limits (not overridable) ============
MAX_PIN_ATTEMPTS = 5
LOCKOUT_DURATION_SECONDS = 15 * 60
MAX_BACKUP_SIZE = 10 * 1024 * 1024   # 10 MB
BACKUP_VERSION = "1.0.0"
