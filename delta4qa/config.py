# delta4qa/config.py
"""
Settings for the Delta4 QA tools, overridable from the environment
(e.g. LOG_LEVEL=DEBUG, TREND_CSV=/srv/qa/delta4_trend.csv).
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Delta4Settings(BaseSettings):
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level",
    )
    LOG_FILE: Optional[Path] = Field(
        default=None,
        description="Optional log file in addition to stdout",
    )
    LOG_JSON: bool = Field(
        default=False,
        description="Write log records as JSON lines",
    )
    TREND_CSV: Path = Field(
        default=Path("data/trends/delta4_trend.csv"),
        description="Trend history of parsed reports",
    )
    STRICT_GAMMA_TABLE: bool = Field(
        default=False,
        description="Fail the parse on a malformed Gamma table instead of dropping it",
    )
    REPORT_PAGES: int = Field(
        default=2,
        ge=1,
        description="Number of leading PDF pages holding the report text",
    )


settings = Delta4Settings()
