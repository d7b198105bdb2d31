"""Shared schema base.

Learn: The wire format is camelCase (`accessToken`, `expiresIn`), Python
attributes stay snake_case. `populate_by_name` lets request bodies use
either spelling; FastAPI serializes responses by alias.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
