import os
from pathlib import Path

from dotenv import load_dotenv

def load_env() -> Path:
    """Load config.env from the repo root, or the file named by MEDIMINDER_ENV_FILE."""
    root = Path(__file__).resolve().parents[2]
    env_path = Path(os.getenv("MEDIMINDER_ENV_FILE") or root / "config.env")
    # real environment variables win over the file
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path
