"""Engine settings, read from ``DATAGRID_ENGINE_*`` environment variables.

Example::

    export DATAGRID_ENGINE_DEFAULT_PAGE_SIZE=50
    export DATAGRID_ENGINE_AUTO_ESCALATE=true
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TableSettings(BaseSettings):
    """Defaults shared by every :class:`DataTableController`.

    Explicit keyword arguments passed to the controller always win over
    these values.
    """

    model_config = SettingsConfigDict(
        env_prefix="DATAGRID_ENGINE_",
        case_sensitive=False,
        extra="ignore",
    )

    default_page_size: int = Field(default=10, ge=1, description="Rows per page at mount")
    page_size_options: list[int] = Field(
        default_factory=lambda: [10, 20, 50, 100],
        description="Page sizes offered by the pagination footer",
    )
    auto_escalate: bool = Field(
        default=False,
        description="Switch to remote mode when a server-only operation is requested",
    )
    value_options_max_unique: int = Field(
        default=500,
        ge=0,
        description="Max distinct values for a column to get a dropdown filter",
    )
    log_level: str = Field(default="WARNING", description="Log level used by the CLI")

    @field_validator("page_size_options")
    @classmethod
    def _positive_sizes(cls, value: list[int]) -> list[int]:
        if any(size < 1 for size in value):
            raise ValueError("page sizes must be >= 1")
        return sorted(set(value))

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()
