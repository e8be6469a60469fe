"""Pydantic models validated at the library boundary."""

from __future__ import annotations

from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel, Field

from kb_retrieval.core.config import Settings
from kb_retrieval.core.errors import ValidationError
from kb_retrieval.models.entities import SearchMode

ModelT = TypeVar("ModelT", bound=BaseModel)


class RetrievalOptions(BaseModel):
    top_k: int = Field(default=3, ge=1)
    threshold: float = Field(default=0.0, ge=0.0, le=100.0)
    use_expansion: bool = True
    rerank_strategy: str = Field(default="reciprocal-rank-fusion", description="Rerank strategy tag")
    filters: dict[str, Any] | None = Field(default=None, description="Metadata equality filters")
    preprocess: bool = Field(default=True, description="Trim, collapse punctuation, drop stop words")
    query_variants: int = Field(default=0, ge=0, le=10, description="Synonym variants searched alongside the query")
    search_mode: SearchMode = SearchMode.VECTOR
    keyword_weight: float = Field(default=0.3, ge=0.0, le=1.0, description="Keyword share of the hybrid score")

    model_config = {"extra": "forbid"}

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "RetrievalOptions":
        values: dict[str, Any] = {
            "top_k": settings.top_k,
            "threshold": settings.similarity_threshold,
            "use_expansion": settings.use_query_expansion,
            "rerank_strategy": settings.rerank_strategy,
            "preprocess": settings.preprocess_queries,
            "query_variants": settings.query_variants,
            "search_mode": settings.search_mode,
            "keyword_weight": settings.keyword_weight,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return validate_model(cls, values)


class LoadTestConfig(BaseModel):
    concurrent_users: int = Field(default=1, ge=1)
    requests_per_user: int = Field(default=1, ge=1)
    ramp_up_s: float = Field(default=0.0, ge=0.0, description="Spread user start times over this window")
    think_time_s: float = Field(default=0.0, ge=0.0, description="Pause between a user's requests")


def validate_model(model: type[ModelT], values: dict[str, Any]) -> ModelT:
    """Build ``model`` from ``values``, surfacing failures as ValidationError."""
    try:
        return model(**values)
    except pydantic.ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        raise ValidationError(f"Invalid {model.__name__}: {details}") from exc


__all__ = ["RetrievalOptions", "LoadTestConfig", "validate_model"]
