import os
from pathlib import Path

from mediminder.core.env import load_env

load_env()

BASE_DIR = Path(__file__).resolve().parents[2]

# storage
DB_PATH = Path(os.getenv("MEDIMINDER_DB_PATH", str(BASE_DIR / "data" / "mediminder.db")))
CHECKPOINT_DB_PATH = Path(os.getenv("MEDIMINDER_CHECKPOINT_DB_PATH", str(BASE_DIR / "data" / "checkpoints.db")))

# scheduling
TIMEZONE = os.getenv("MEDIMINDER_TIMEZONE", "Asia/Kolkata")
DEFAULT_DAYS = int(os.getenv("MEDIMINDER_DEFAULT_DAYS", "7"))

# chat: primary provider (Gemini REST)
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "models/gemini-2.0-flash")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
GEMINI_TIMEOUT_S = int(os.getenv("GEMINI_TIMEOUT_S", "30"))
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.2"))
GEMINI_MAX_OUTPUT_TOKENS = int(os.getenv("GEMINI_MAX_OUTPUT_TOKENS", "300"))

# chat: fallback provider (Hugging Face inference)
HF_CHAT_MODEL = os.getenv("HF_CHAT_MODEL", "meta-llama/Llama-3.2-3B-Instruct")
HF_TEMPERATURE = float(os.getenv("HF_TEMPERATURE", "0.2"))
HF_MAX_TOKENS = int(os.getenv("HF_MAX_TOKENS", "400"))
HF_TIMEOUT_S = int(os.getenv("HF_TIMEOUT_S", "60"))

# chat: service behaviour
CHAT_CACHE_TTL_S = int(os.getenv("CHAT_CACHE_TTL_S", str(30 * 60)))
CHAT_COOLDOWN_S = float(os.getenv("CHAT_COOLDOWN_S", "5"))
CHAT_MAX_ATTEMPTS = int(os.getenv("CHAT_MAX_ATTEMPTS", "2"))
CHAT_BACKOFF_MS = int(os.getenv("CHAT_BACKOFF_MS", "300"))

# logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "false").lower() == "true"
LOG_FILE = Path(os.getenv("LOG_FILE")) if os.getenv("LOG_FILE") else None
