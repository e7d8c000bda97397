from __future__ import annotations

import os
from pathlib import Path
from typing import List


class Settings:
    """Centralized configuration for the meal tracking backend."""

    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent
        repo_root = base_dir.parent
        data_root_default = repo_root / "data"

        self.data_root: Path = Path(
            os.environ.get("MACROTRACK_DATA_ROOT") or data_root_default
        ).expanduser()
        self.app_db_path: Path = Path(
            os.environ.get("MACROTRACK_DB_PATH") or (self.data_root / "macrotrack.db")
        ).expanduser()
        self.uploads_root: Path = Path(
            os.environ.get("MACROTRACK_UPLOADS_ROOT") or (self.data_root / "uploads")
        ).expanduser()

        # ---- Generative model (Google Generative Language API) ----
        self.google_ai_api_key: str | None = os.environ.get("GOOGLE_AI_API_KEY")
        self.model: str = os.environ.get("MACROTRACK_MODEL", "gemini-2.0-flash-lite")
        self.model_base_url: str = os.environ.get(
            "MACROTRACK_MODEL_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        )
        # Per-attempt ceiling; a hung upstream call is abandoned and retried.
        self.model_timeout: float = float(os.environ.get("MACROTRACK_MODEL_TIMEOUT") or "30")
        self.model_temperature: float = float(os.environ.get("MACROTRACK_MODEL_TEMPERATURE") or "0.2")
        self.blob_timeout: float = float(os.environ.get("MACROTRACK_BLOB_TIMEOUT") or "30")

        # ---- Free tier ----
        self.free_ai_limit: int = int(os.environ.get("MACROTRACK_FREE_AI_LIMIT") or "20")

        cors = os.environ.get("MACROTRACK_CORS_ORIGINS", "*")
        if cors.strip() == "*":
            self.cors_origins: List[str] = ["*"]
        else:
            self.cors_origins = [
                origin.strip() for origin in cors.split(",") if origin.strip()
            ]


settings = Settings()
