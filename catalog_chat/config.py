from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Settings:
    """Configuration container for the model, catalog, prompts, and runtime limits."""
    gemini_api_key: str
    gemini_model: str
    catalog_path: Path
    prompts_dir: Path
    max_history_tokens: int
    generation_timeout_sec: float
    generation_temperature: float
    max_output_tokens: int
    session_ttl_sec: float
    max_sessions: int
    static_dir: Optional[Path] = None
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid numeric env values raise ValueError at startup.
    If Removed: App cannot locate the catalog or reach Gemini and fails at startup.
    Testing Notes: Verify defaults and overrides via monkeypatched environment variables.
    """
    # Resolve catalog and prompt paths, then build Settings.
    catalog_path = os.getenv("CATALOG_PATH")
    if catalog_path:
        catalog_file = Path(catalog_path)
    else:
        catalog_file = (BASE_DIR / ".." / "resources" / "products.json").resolve()

    prompts_dir = os.getenv("PROMPTS_DIR")
    static_dir = os.getenv("STATIC_DIR")

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        catalog_path=catalog_file,
        prompts_dir=Path(prompts_dir) if prompts_dir else (BASE_DIR / "prompts").resolve(),
        max_history_tokens=int(os.getenv("MAX_HISTORY_TOKENS", "1500")),
        generation_timeout_sec=float(os.getenv("GENERATION_TIMEOUT_SEC", "60")),
        generation_temperature=float(os.getenv("GENERATION_TEMPERATURE", "0.2")),
        max_output_tokens=int(os.getenv("MAX_OUTPUT_TOKENS", "1024")),
        session_ttl_sec=float(os.getenv("SESSION_TTL_SEC", "0")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "0")),
        static_dir=Path(static_dir) if static_dir else None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
