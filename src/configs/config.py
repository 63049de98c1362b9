# src/configs/config.py
import yaml
from pathlib import Path
from functools import lru_cache
from typing import Optional


class Config:
    """
    File locations and YAML loaders for the venue matching engine.
    """

    # 1. Setup Base Paths
    # This points to src/configs/
    CONFIG_DIR = Path(__file__).parent.resolve()
    # This points to the project root
    PROJECT_ROOT = CONFIG_DIR.parent.parent

    # 2. Define File Paths
    MATCHING_CONFIG_PATH = CONFIG_DIR / "matching.yaml"
    TAXONOMY_DATA_PATH = (
        PROJECT_ROOT / "src" / "assets" / "venue_taxonomy_snapshot.json"
    )

    @classmethod
    @lru_cache
    def load_matching_config(cls, path: Optional[Path] = None) -> dict:
        """Loads the YAML configuration for scoring and matching."""
        config_path = Path(path) if path else cls.MATCHING_CONFIG_PATH
        if not config_path.exists():
            raise FileNotFoundError(f"Missing config at {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    @classmethod
    def get_taxonomy_path(cls) -> Path:
        """Returns the absolute path to the taxonomy snapshot JSON."""
        return cls.TAXONOMY_DATA_PATH
