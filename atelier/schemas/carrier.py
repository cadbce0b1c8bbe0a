"""Carrier parcel models for the Mylerz merchant API."""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class CarrierParcel(BaseModel):
    """One parcel row from ``GetPackagesList``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    tracking_token: str = Field(validation_alias=AliasChoices("Barcode", "tracking_token"))
    status_text: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("PackageENStatus", "status_text")
    )
    customer_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("CustomerName", "customer_name")
    )
    phone: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("PhoneNo", "CustomerMobile", "phone")
    )

    @field_validator("tracking_token", mode="before")
    @classmethod
    def _strip_token(cls, value):
        return str(value).strip() if value is not None else value
