"""Success envelope helpers: {"success": true, "data": ..., "meta": ...}."""

import math
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request body with camelCase keys on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def success(data: Any = None, meta: dict | None = None) -> dict:
    body: dict = {"success": True, "data": data}
    if meta is not None:
        body["meta"] = meta
    return body


def page_meta(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def paginated(data: list, page: int, limit: int, total: int) -> dict:
    return success(data, page_meta(page, limit, total))
