"""
Feature Definition Models - SQLAlchemy models for stored definitions.

Tables:
- feature_definitions: one Microsoft schema feature flag document per row
"""

from sqlalchemy import JSON, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from feature_management.models.base import Base, TimestampMixin


class FeatureDefinitionModel(Base, TimestampMixin):
    """
    Stored feature definition.

    `document` holds the feature flag in the same shape as a
    configuration file entry (id, enabled, conditions, variants,
    allocation, telemetry). Label, ETag and tags live in their own
    columns so they can be queried.
    """

    __tablename__ = "feature_definitions"

    name: Mapped[str] = mapped_column(String(200), primary_key=True)

    # Example: {"id": "Beta", "enabled": true, "conditions": {...}}
    document: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=dict,
        nullable=False,
    )

    label: Mapped[str | None] = mapped_column(String(200), nullable=True)
    etag: Mapped[str | None] = mapped_column(String(200), nullable=True)
    tags: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=dict,
        nullable=False,
    )

    def __repr__(self) -> str:
        enabled = "ON" if self.document.get("enabled") else "OFF"
        return f"<FeatureDefinition {self.name} [{enabled}]>"
