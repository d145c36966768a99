import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent

# Paths
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(BASE_DIR / "output")))
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'payroll.db'}")

# Ensure directories exist
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
(OUTPUT_DIR / "reports").mkdir(exist_ok=True)
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Application settings
DEBUG = os.getenv("DEBUG", "False").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Statutory calculation defaults
DEFAULT_TAX_CALCULATION_METHOD = os.getenv("DEFAULT_TAX_CALCULATION_METHOD", "cumulative")
DEFAULT_ALLOW_MID_YEAR_REFUNDS = os.getenv("DEFAULT_ALLOW_MID_YEAR_REFUNDS", "True").lower() == "true"
DEFAULT_REFUND_METHOD = os.getenv("DEFAULT_REFUND_METHOD", "automatic")
DEFAULT_REFUND_DISPLAY_TYPE = os.getenv("DEFAULT_REFUND_DISPLAY_TYPE", "reduced_tax")
DEFAULT_REFUND_LINE_ITEM_LABEL = os.getenv("DEFAULT_REFUND_LINE_ITEM_LABEL", "PAYE Refund")
DEFAULT_PAY_FREQUENCY = os.getenv("DEFAULT_PAY_FREQUENCY", "monthly")
DEFAULT_MONDAY_COUNT = int(os.getenv("DEFAULT_MONDAY_COUNT", "4"))

# Tax year starts on this month/day (calendar year by default)
TAX_YEAR_START_MONTH = int(os.getenv("TAX_YEAR_START_MONTH", "1"))
TAX_YEAR_START_DAY = int(os.getenv("TAX_YEAR_START_DAY", "1"))

# Context fetches run concurrently on this many threads
FETCH_WORKERS = int(os.getenv("FETCH_WORKERS", "8"))

# Secret for Flask app
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-dotenv")
