"""Persisted matching configuration."""

from typing import Any

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_ingest.database import Base
from treasury_ingest.models.base import IntegerIDMixin, TimestampMixin


class MatchingConfiguration(Base, IntegerIDMixin, TimestampMixin):
    """Stored matching tunables.

    At most one row is flagged ``is_active``; the pipeline resolves it once
    per run. ``overrides`` holds only the keys that differ from the defaults.
    """

    __tablename__ = "matching_configurations"

    name: Mapped[str] = mapped_column(String(100), nullable=False, default="default")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    overrides: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
