from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
import os
from dotenv import load_dotenv

# Base directory of the project
BASE_DIR = Path(__file__).resolve().parents[1]

# Load environment variables once
load_dotenv()

SHORTFALL_ACCEPT = "accept"
SHORTFALL_REJECT = "reject"


@dataclass
class Config:
    """Submission and compression settings loaded from environment variables."""

    # Upload limits
    budget_bytes: int = int(os.getenv("SUBMISSION_BUDGET_BYTES", 500 * 1024))
    upload_limit_bytes: int = int(os.getenv("SUBMISSION_UPLOAD_LIMIT_BYTES", 5 * 1024 * 1024))
    max_images: int = int(os.getenv("SUBMISSION_MAX_IMAGES", 3))
    max_file_name_length: int = int(os.getenv("SUBMISSION_MAX_FILE_NAME_LENGTH", 100))
    max_workers: int = int(os.getenv("SUBMISSION_MAX_WORKERS", 4))
    # What to do with a file still over budget after the quality search gave up
    shortfall_policy: str = os.getenv("SUBMISSION_SHORTFALL_POLICY", SHORTFALL_ACCEPT).lower()

    # Quality search
    initial_quality: float = float(os.getenv("COMPRESSION_INITIAL_QUALITY", 0.9))
    quality_floor: float = float(os.getenv("COMPRESSION_QUALITY_FLOOR", 0.1))
    max_attempts: int = int(os.getenv("COMPRESSION_MAX_ATTEMPTS", 10))

    # Paths
    output_dir: Path = Path(os.getenv("OUTPUT_DIR", BASE_DIR / "data" / "processed" / "compressed"))
    log_file: Path = Path(os.getenv("LOG_FILE", BASE_DIR / "logs" / "compression_log.txt"))

    def __post_init__(self) -> None:
        if self.shortfall_policy not in (SHORTFALL_ACCEPT, SHORTFALL_REJECT):
            raise ValueError(
                f"Unknown shortfall policy {self.shortfall_policy!r}; "
                f"expected {SHORTFALL_ACCEPT!r} or {SHORTFALL_REJECT!r}"
            )
        if self.budget_bytes <= 0:
            raise ValueError("budget_bytes must be positive")


@lru_cache()
def get_config() -> Config:
    """Return a cached configuration instance."""
    return Config()
