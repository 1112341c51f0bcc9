"""Request payloads for the claim workflow."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ClaimStartRequest(BaseModel):
    """Payload accepted by `POST /claim-start`.

    Identifies the profile by `barberId`, by `slug`, or by `businessName`
    (which is slugified and may create a placeholder listing).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    barber_id: str | None = None
    slug: str | None = None
    business_name: str | None = None
    owner_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    import_source: str | None = None
    import_external_id: str | None = None


class ClaimCompleteRequest(BaseModel):
    """Payload accepted by `POST /claim-complete`."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    token: str = Field(default="")
    user_id: str | None = None
    email: str | None = None


class ClaimPeekRequest(BaseModel):
    """Payload accepted by `POST /claim-peek`."""

    token: str = Field(default="")
