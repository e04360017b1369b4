"""
Shared API schemas: camelCase models, response envelopes and the
DataTables query parser.
"""

import uuid
from decimal import Decimal
from typing import Annotated, Generic, Optional, TypeVar

from fastapi import Request
from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from backoffice.errors import ValidationError
from backoffice.services.listing import DEFAULT_PAGE_LENGTH, ListPage, ListParams

T = TypeVar("T")

# Decimals travel as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class DataTablesResponse(CamelModel, Generic[T]):
    draw: int
    records_total: int
    records_filtered: int
    data: list[T]


class UserRef(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    role: Optional[str] = None


class NamedRef(CamelModel):
    id: int
    name: str


def to_datatables(page: ListPage, schema: type[BaseModel]) -> dict:
    return {
        "draw": page.draw,
        "records_total": page.records_total,
        "records_filtered": page.records_filtered,
        "data": [schema.model_validate(row) for row in page.rows],
    }


_RESERVED_PARAMS = {"draw", "start", "length", "search", "sortBy", "sortOrder", "_"}


def datatables_params(request: Request) -> ListParams:
    """
    Parse DataTables server-side parameters (``draw``, ``start``, ``length``,
    ``search[value]``, ``order[0][column]``, ``order[0][dir]``,
    ``columns[i][data]``). ``sortBy``/``sortOrder``/``search`` are accepted
    too. Remaining query parameters are passed on as filters.
    """
    qp = request.query_params
    try:
        draw = int(qp.get("draw", 1))
        start = int(qp.get("start", 0))
        length = int(qp.get("length", DEFAULT_PAGE_LENGTH))
    except ValueError:
        raise ValidationError("Parámetros de paginación inválidos", code="invalid_pagination")

    sort = qp.get("sortBy")
    sort_dir = qp.get("sortOrder", "asc")
    order_index = qp.get("order[0][column]")
    if order_index is not None:
        sort = qp.get(f"columns[{order_index}][data]") or order_index
        sort_dir = qp.get("order[0][dir]", "asc")

    filters = {
        key: value
        for key, value in qp.items()
        if key not in _RESERVED_PARAMS and not key.startswith(("columns[", "order[", "search["))
    }

    return ListParams(
        draw=draw,
        start=start,
        length=length,
        search=qp.get("search[value]") or qp.get("search"),
        sort=sort,
        sort_dir=sort_dir,
        filters=filters,
    )
