# packages/platform_lib/config/__init__.py

from pathlib import Path
from pydantic_settings import BaseSettings


# Import sub-configs
from .system import SystemConfig
from .scoring import ScoringConfig


# Define Project Root
PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    # Composition: Grouping configs by domain
    system: SystemConfig = SystemConfig()
    scoring: ScoringConfig = ScoringConfig()


# Singleton Instance
try:
    settings = Settings()
except Exception as e:
    print(f"CRITICAL: Config load failed. Details: {e}")
    raise e
