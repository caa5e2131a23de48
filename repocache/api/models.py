# repocache/api/models.py - Pydantic models for request validation
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RefreshRequest(BaseModel):
    """Force-refresh endpoint request model"""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"query": "machine learning", "page": 1, "perPage": 30}},
    )

    query: str = Field("", max_length=256, description="GitHub search text")
    # Range checks happen in the service so bad paging is a 400, not a 422
    page: int = Field(1, description="1-based page number")
    per_page: int = Field(30, alias="perPage", description="Repositories per page")

    @field_validator("query")
    @classmethod
    def strip_markup(cls, v: str) -> str:
        return re.sub(r"<[^>]+>", "", v).strip()
