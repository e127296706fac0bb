"""Pydantic schemas for the per-platform configuration block.

Each extraction adapter ships a PlatformConfig describing how the engine
should fetch and paginate that platform. Field aliases accept the key
names used by older platform configs (``max_consecutive_errors``,
``delay_between_pages``).
"""

from enum import Enum
from typing import Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class FetchMode(str, Enum):
    HTTP = "http"
    RENDERED = "rendered"


class PaginationType(str, Enum):
    REGULAR = "regular"
    CURSOR = "cursor"


class PaginationConfig(BaseModel):
    """How a category listing is walked."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: PaginationType = PaginationType.REGULAR
    max_pages: int = Field(100, ge=1, description="Hard ceiling on listing pages per category")
    page_param: str = Field("page", min_length=1, description="Query parameter carrying the page number")
    cursor_param: str = Field("cursor", min_length=1, description="Query parameter carrying a cursor token")
    consecutive_error_limit: int = Field(
        3,
        ge=1,
        validation_alias=AliasChoices("consecutive_error_limit", "max_consecutive_errors"),
        description="Consecutive failed pages after which the category walk stops",
    )
    delay_range: Tuple[float, float] = Field(
        (2.0, 5.0),
        validation_alias=AliasChoices("delay_range", "delay_between_pages"),
        description="Random politeness delay between listing pages, in seconds",
    )

    @field_validator("delay_range")
    @classmethod
    def check_delay_range(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        low, high = value
        if low < 0 or high < low:
            raise ValueError("delay_range must be (min, max) with 0 <= min <= max")
        return value


class PlatformConfig(BaseModel):
    """Configuration block exchanged with an adapter at setup."""

    model_config = ConfigDict(frozen=True)

    platform_name: str = Field(..., min_length=1, examples=["flipkart"])
    fetch_mode: FetchMode = FetchMode.HTTP
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    max_products_per_page: int = Field(50, ge=1)
    render_wait_selector: Optional[str] = Field(
        None, description="CSS selector the rendered strategy waits for before reading the page"
    )
    render_scroll_steps: int = Field(
        0, ge=0, description="Scroll steps the rendered strategy performs to trigger lazy loading"
    )
    render_locale: str = Field("en-IN", description="Browser locale of the platform's rendering context")
    render_timezone: str = Field("Asia/Kolkata", description="Browser timezone of the platform's rendering context")
    render_blocked_resources: Tuple[str, ...] = Field(
        ("image", "media", "font"),
        description="Playwright resource types aborted in the rendering context",
        examples=[("image", "font")],
    )
