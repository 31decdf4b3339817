from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Request bodies use the storefront UI's camelCase keys , snake_case is accepted as well."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")
