"""Base schema classes."""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base for all schemas with from_attributes config."""

    model_config = ConfigDict(from_attributes=True)
