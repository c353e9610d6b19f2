"""
Copy Payload - the JSON body exchanged between the copy agent and the proxy.

Fields are snake_case in Python and camelCase on the wire.
"""

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class RequestPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    project_context: str = ""
    audience: str = ""
    element_context: str = ""
    surrounding_copy_context: str = ""
    generation_history: str = ""
    current_text: str = ""
    user_request: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        # Optional fields may arrive as JSON null
        return "" if value is None else value

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class GenerateResponse(BaseModel):
    text: str = ""
