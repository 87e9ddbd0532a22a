"""
Configuration settings for the roadgrade engine.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings with environment variable support.

    These values tune the engine itself rather than an individual road
    material. They are passed explicitly into the smoother; the module-level
    ``settings`` instance is only the default.

    Attributes:
        environment: Deployment environment, selects the console log format
        log_level: Explicit log level, defaults by environment when unset
        debug_output_dir: Directory for debug images when a material does not
            name its own
        spatial_index_cell_size: Bucket size of the cross-section index (pixels)
        max_grid_cells: Largest heightmap accepted (cells)
        spur_prune_cap: Upper bound on spur pruning iterations
        single_pass_coverage_threshold: Largest-path coverage that forces a
            single full-grid pass
        overlap_coverage_threshold: Summed box coverage that indicates overlap
        modified_pixel_threshold: Minimum |delta| counted as a modification
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="ROADGRADE_",
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Optional[str] = None

    # Output
    debug_output_dir: Path = Path("./data/debug")

    # Algorithm tuning
    spatial_index_cell_size: int = Field(default=32, gt=0)
    max_grid_cells: int = Field(default=4096 * 4096, gt=0)
    spur_prune_cap: int = Field(default=10, ge=0)

    # Adaptive strategy thresholds
    single_pass_coverage_threshold: float = Field(default=0.35, gt=0.0)
    overlap_coverage_threshold: float = Field(default=1.2, gt=0.0)
    dense_network_path_count: int = Field(default=20, ge=1)
    dense_network_coverage_threshold: float = Field(default=0.7, gt=0.0)

    # Statistics
    modified_pixel_threshold: float = Field(default=0.001, ge=0.0)

    @property
    def is_development(self) -> bool:
        """Whether the engine runs in development mode."""
        return self.environment == "development"


# Global settings instance
settings = Settings()
