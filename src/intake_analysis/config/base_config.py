# ============================================================================
# src/intake_analysis/config/base_config.py
# ============================================================================
"""
Base Configuration
- Project root
- Data directory
- Intake update store location
"""

from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings


class BaseSettingsConfig(BaseSettings):
    # Root project directory
    PROJECT_ROOT: Path = Field(
        default_factory=lambda: Path(__file__).parent.parent.parent.parent,
        description="Root directory of the project"
    )

    DATA_DIR: Path = Field(
        default=Path("data"),
        description="Directory holding local service data"
    )

    # Intake update store
    INTAKE_DB_PATH: Path = Field(
        default=Path("data/intake_updates.db"),
        description="SQLite database for patient intake update records"
    )

    def create_directories(self):
        """Create all necessary directories if they don't exist"""
        dirs = [
            self.DATA_DIR,
            self.INTAKE_DB_PATH.parent,
        ]
        for directory in dirs:
            directory.mkdir(parents=True, exist_ok=True)


# Global instance
base_settings = BaseSettingsConfig()
