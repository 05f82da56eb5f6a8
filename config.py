import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent

SQLITE_PATH = os.environ.get("LEDGER_DB_PATH", str(PROJECT_ROOT / "ledger.db"))
BACKUP_DIR = str(PROJECT_ROOT / "backups")

DEFAULT_CURRENCY = os.environ.get("LEDGER_DEFAULT_CURRENCY", "BRL")
LOG_LEVEL = os.environ.get("LEDGER_LOG_LEVEL", "INFO")

# seconds SQLite waits on a locked database before raising
BUSY_TIMEOUT = float(os.environ.get("LEDGER_BUSY_TIMEOUT", "5.0"))

READ_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_READ_RETRY_ATTEMPTS", "3"))
READ_RETRY_MIN_WAIT = float(os.environ.get("LEDGER_READ_RETRY_MIN_WAIT", "0.05"))
READ_RETRY_MAX_WAIT = float(os.environ.get("LEDGER_READ_RETRY_MAX_WAIT", "1.0"))

PRIMARY_WALLET_NAME = "Main wallet"
DEFAULT_WALLETS = (
    ("Cash", "cash"),
    ("Card", "card"),
    ("Investments", "investment"),
    ("Reserve", "reserve"),
)

INCOME_CATEGORY = "Salary"
INCOME_DESCRIPTION = "Monthly income"
QUESTIONNAIRE_EXPENSE_CATEGORIES = (
    ("rent", "Housing", "Rent"),
    ("shopping", "Shopping", "Shopping"),
    ("other", "Other", "Other expenses"),
)
