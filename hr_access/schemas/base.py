"""
Shared schema configuration

Documents and the HTTP API use camelCase field names; Python code uses
snake_case attributes.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
