from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request body accepting the API's camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def isoformat(value):
    return value.isoformat() if value else None


def str_id(value):
    return str(value) if value else None
