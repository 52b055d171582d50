"""
Base Schemas
============

Common schema patterns.
"""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base Pydantic schema with common configuration.

    All API schemas should inherit from this base.
    """

    model_config = ConfigDict(
        # Allow ORM mode for SQLAlchemy models
        from_attributes=True,
        # Validate default values
        validate_default=True,
        # Use enum values instead of names
        use_enum_values=True,
        # Strip whitespace from strings
        str_strip_whitespace=True,
    )


class VerbatimSchema(BaseSchema):
    """Schema whose strings are carried byte for byte (document text, diffs)."""

    model_config = ConfigDict(str_strip_whitespace=False)

