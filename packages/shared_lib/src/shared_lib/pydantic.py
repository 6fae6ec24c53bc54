"""Base model for API payloads."""

from pydantic import BaseModel, ConfigDict


class APIBaseModel(BaseModel):
    """Base class for every API model.

    Unknown fields sent by the server are ignored so that additive API
    changes never break parsing.
    """

    model_config = ConfigDict(extra="ignore")

    def __str__(self) -> str:
        """Return a readable JSON rendering of the model."""
        return self.model_dump_json(indent=2, ensure_ascii=False)
