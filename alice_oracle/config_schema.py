from __future__ import annotations

from typing import Annotated, Any, Dict, Optional

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, HttpUrl, UrlConstraints, ValidationError

WebsocketUrl = Annotated[AnyUrl, UrlConstraints(allowed_schemes=["ws", "wss"])]


class ConfigModel(BaseModel):
    """Schema for alice-oracle configuration files.

    Every key is optional; anything left out keeps its default (or the
    environment override).  Unknown keys are rejected so typos surface early.
    """

    model_config = ConfigDict(extra="forbid")

    fdv_limit: Optional[float] = Field(default=None, gt=0)
    min_liquidity: Optional[float] = Field(default=None, ge=0)
    max_age_minutes: Optional[float] = Field(default=None, gt=0)
    limit_results: Optional[int] = Field(default=None, ge=1)
    require_pumpfun: Optional[bool] = None
    cache_ttl: Optional[float] = Field(default=None, ge=0)
    http_timeout: Optional[float] = Field(default=None, gt=0)
    http_retries: Optional[int] = Field(default=None, ge=1)
    http_backoff: Optional[float] = Field(default=None, ge=0)
    stream_url: Optional[WebsocketUrl] = None
    stream_capacity: Optional[int] = Field(default=None, ge=1)
    stream_reconnect_delay: Optional[float] = Field(default=None, ge=0)
    listing_url: Optional[HttpUrl] = None
    market_data_url: Optional[HttpUrl] = None
    kp_index_url: Optional[HttpUrl] = None
    enrich_max_queries: Optional[int] = Field(default=None, ge=0)
    enrich_concurrency: Optional[int] = Field(default=None, ge=1)
    discovery_max: Optional[int] = Field(default=None, ge=1)
    discovery_min_stream: Optional[int] = Field(default=None, ge=0)
    discovery_min_total: Optional[int] = Field(default=None, ge=0)
    synthetic_fallback: Optional[bool] = None
    recall_path: Optional[str] = None
    recall_capacity: Optional[int] = Field(default=None, ge=1, le=500)


def validate_config(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate ``data`` against :class:`ConfigModel`.

    Returns only the keys that were set, with URLs as plain strings.  Raises
    ``ValueError`` on validation errors.
    """
    try:
        model = ConfigModel(**data)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc
    return model.model_dump(mode="json", exclude_none=True)


__all__ = ["ConfigModel", "WebsocketUrl", "validate_config"]
