from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime

MAX_ALLERGY_TEXT_LENGTH = 500


class UserAllergyCreate(BaseModel):
    allergy_text: str = Field(min_length=1, max_length=MAX_ALLERGY_TEXT_LENGTH)

    @field_validator("allergy_text")
    @classmethod
    def not_blank(cls, value: str):
        value = value.strip()
        if not value:
            raise ValueError("allergy_text must not be blank")
        return value


class UserAllergyResponse(BaseModel):
    id: int
    allergy_text: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserProfileResponse(BaseModel):
    id: int
    name: str
    email: str
    is_active: bool
    allergies: List[UserAllergyResponse] = []

    model_config = ConfigDict(from_attributes=True)


class SafetyVerdict(BaseModel):
    is_safe: bool
    # the user's own wording of every conflicting allergy
    conflicts: List[str] = []
    product_allergens: List[str] = []


class ProductReference(BaseModel):
    id: int
    name: str
    upc_code: str

    model_config = ConfigDict(from_attributes=True)


class ProductSafetyResponse(BaseModel):
    product: ProductReference
    is_safe: bool
    potential_conflicts: List[str]
    product_allergens: List[str]
    checked_at: str
