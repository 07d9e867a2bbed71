"""
config.py – Centralised configuration loaded from environment variables.
"""

import os
import sys
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Validated, read-only application settings."""

    # ── Azure DevOps ────────────────────────────────────────
    ADO_ORG_URL: str = os.getenv("ADO_ORG_URL", "").rstrip("/")
    ADO_PROJECT: str = os.getenv("ADO_PROJECT", "")
    ADO_PAT: str = os.getenv("ADO_PAT", "")
    ADO_API_VERSION: str = os.getenv("ADO_API_VERSION") or "7.1"

    # Optional default for `run.py push`
    ADO_TEST_PLAN_ID: int = int(os.getenv("ADO_TEST_PLAN_ID") or 0)

    # ── HTTP ────────────────────────────────────────────────
    ADO_TIMEOUT: float = float(os.getenv("ADO_TIMEOUT") or 30)

    @classmethod
    def validate(cls) -> None:
        """Halt early if required values are missing."""
        missing: list[str] = []
        if not cls.ADO_ORG_URL:
            missing.append("ADO_ORG_URL")
        if not cls.ADO_PROJECT:
            missing.append("ADO_PROJECT")
        if not cls.ADO_PAT:
            missing.append("ADO_PAT")

        if missing:
            sys.exit(
                f"[ERROR] Missing required environment variables: {', '.join(missing)}\n"
                "  → Copy .env.example to .env and fill in all values."
            )
