"""
Build configuration for the data pipeline.

Settings come from the environment (optionally seeded from a ``.env`` file)
and may be overridden from the command line.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger("xivdata")

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DATA_DIR = PROJECT_ROOT.parent / "ffxiv-datamining-tc"
DEFAULT_OUTPUT_DIR = PROJECT_ROOT / "public" / "data"


class DataRepoNotFoundError(Exception):
    """The local game-data dump directory does not exist."""
    pass


class BuildSettings(BaseModel):
    """Settings for one pipeline run."""

    data_dir: Path = Field(
        default=DEFAULT_DATA_DIR,
        description="Root of the local datamining dump; tables live in <data_dir>/csv",
    )
    output_dir: Path = Field(
        default=DEFAULT_OUTPUT_DIR,
        description="Directory the JSON artifacts are written to",
    )
    fetch_timeout: float = Field(
        default=60.0,
        gt=0.0,
        description="Per-request timeout in seconds for remote feeds",
    )
    fetch_concurrency: int = Field(
        default=8,
        ge=1,
        description="Maximum concurrent remote fetches within one phase",
    )

    @property
    def csv_dir(self) -> Path:
        return self.data_dir / "csv"

    def table_path(self, name: str) -> Path:
        """Path of a local table, e.g. ``table_path("Item")`` -> ``.../csv/Item.csv``."""
        return self.csv_dir / f"{name}.csv"


def load_settings(
    data_dir: Path | str | None = None,
    output_dir: Path | str | None = None,
) -> BuildSettings:
    """
    Resolve settings from arguments, environment variables and defaults.

    Explicit arguments win over ``DATA_REPO_PATH`` / ``XIVDATA_OUTPUT_DIR``,
    which win over the built-in defaults.
    """
    if not load_dotenv():
        logger.debug("No .env file found, using process environment only")

    values: dict = {}

    env_data_dir = os.getenv("DATA_REPO_PATH")
    env_output_dir = os.getenv("XIVDATA_OUTPUT_DIR")
    if data_dir or env_data_dir:
        values["data_dir"] = Path(data_dir or env_data_dir).expanduser()
    if output_dir or env_output_dir:
        values["output_dir"] = Path(output_dir or env_output_dir).expanduser()

    timeout = os.getenv("XIVDATA_FETCH_TIMEOUT")
    if timeout:
        values["fetch_timeout"] = timeout
    concurrency = os.getenv("XIVDATA_FETCH_CONCURRENCY")
    if concurrency:
        values["fetch_concurrency"] = concurrency

    return BuildSettings(**values)
