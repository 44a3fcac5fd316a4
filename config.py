import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "studentrecords")
FRONTEND_URL = os.getenv("FRONTEND_URL", "*")

SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "7"))
RESET_TOKEN_TTL_MINUTES = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "60"))
ROLL_NUMBER_MAX_ATTEMPTS = int(os.getenv("ROLL_NUMBER_MAX_ATTEMPTS", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8000"))
