import os

from dotenv import load_dotenv

load_dotenv()

# ================= CONFIG =================
BOT_TOKEN = os.getenv("BOT_TOKEN", "")

# Bot owner (super admin), matched by username or numeric id
OWNER_USERNAME = os.getenv("OWNER_USERNAME", "").lstrip("@")
ADMIN_IDS = [int(x) for x in os.getenv("ADMIN_IDS", "").split(",") if x.strip()]

INACTIVITY_LIMIT = int(os.getenv("INACTIVITY_LIMIT", 600))  # 10 minutes
PORT = int(os.environ.get("PORT", 5000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
