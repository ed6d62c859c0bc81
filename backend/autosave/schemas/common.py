"""Shared schema building blocks: camelCase models, wei amounts, response envelope."""

from typing import Annotated, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel


T = TypeVar("T")

# Wei amounts exceed the precision of JSON numbers in most clients
WeiStr = Annotated[int, PlainSerializer(lambda v: str(v), return_type=str, when_used="json")]


class CamelModel(BaseModel):
    """Base model exposing camelCase field names while accepting snake_case too."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    """Uniform success envelope."""

    success: bool = True
    data: T
    message: Optional[str] = None
