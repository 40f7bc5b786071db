import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./marketintel.db")
LOG_DIR: str = os.environ.get("MARKET_INTEL_LOG_DIR", "logs")
