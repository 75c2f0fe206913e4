"""Recipient-related Pydantic schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Recipient(BaseModel):
    """Payout recipient details; the plaintext side of the encryption boundary."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1, description="Account holder name")
    institution: str = Field(..., min_length=1, description="Bank or mobile money provider")
    institution_code: str = Field(..., min_length=1, alias="institutionCode")
    account_identifier: str = Field(..., min_length=1, alias="accountIdentifier")
    type: Literal["bank", "mobile_money"] = Field(..., description="Recipient account type")

    @field_validator("name", "institution", "institution_code", "account_identifier", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    def to_wire(self) -> dict[str, str]:
        """Return the camelCase mapping used on the wire and inside ciphertext."""
        return self.model_dump(by_alias=True)


class RecipientWithId(Recipient):
    """Recipient as returned to its owner, with the storage identifier."""

    id: int


class RecipientListResponse(BaseModel):
    success: bool = True
    data: list[RecipientWithId]


class RecipientResponse(BaseModel):
    success: bool = True
    data: RecipientWithId
