"""
Domain event base model.

Events are caller-owned business payloads. The only structural requirement
is an identifier, used for log correlation; the bridge never deduplicates on
it.
"""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class DomainEvent(BaseModel):
    """
    Base class for events published through the bridge.

    Accepts ``id`` or ``Id`` on input so payloads produced by
    PascalCase serializers validate unchanged. Unknown fields are kept.
    """
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
    )

    id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("id", "Id"),
        description="Caller-assigned identifier (correlation only)",
    )
