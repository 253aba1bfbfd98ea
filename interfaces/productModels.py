from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Literal, Optional
from datetime import datetime

from services.text_normalizer import clean_product_name, normalize_text, normalize_upc


def _clean_tags(value):
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError("allergens must be a list of strings")
    cleaned = []
    for tag in value:
        if not isinstance(tag, str):
            raise ValueError("allergens must be a list of strings")
        tag = normalize_text(tag)
        if tag:
            cleaned.append(tag)
    return cleaned


class ClassifiedIngredient(BaseModel):
    name: str
    allergens: List[str] = []

    @field_validator("name", mode="before")
    @classmethod
    def clean_name(cls, value):
        if not isinstance(value, str):
            raise ValueError("ingredient name must be a string")
        return normalize_text(value)

    @field_validator("allergens", mode="before")
    @classmethod
    def clean_allergens(cls, value):
        return _clean_tags(value)


class ClassificationResult(BaseModel):
    """Validated answer of the allergen classifier."""
    ingredients: List[ClassifiedIngredient]
    general_allergens: List[str] = []

    @field_validator("general_allergens", mode="before")
    @classmethod
    def clean_general_allergens(cls, value):
        return _clean_tags(value)

    @model_validator(mode="after")
    def drop_unnamed_ingredients(self):
        self.ingredients = [ingredient for ingredient in self.ingredients if ingredient.name]
        return self


class ProductCandidate(BaseModel):
    """A product record handed to the ingestion pipeline by a source adapter or an import file."""
    model_config = ConfigDict(populate_by_name=True)

    upc_code: str = Field(validation_alias=AliasChoices("upc_code", "upc", "code"))
    name: str = Field(validation_alias=AliasChoices("name", "product_name"))
    ingredients_text: Optional[str] = None
    # pre-classified ingredients, persisted as given
    ingredients: Optional[List[ClassifiedIngredient]] = None
    source: str = "manual"
    categories: Optional[str] = None
    brands: Optional[str] = None
    allergens: Optional[str] = None
    image_ingredients_url: Optional[str] = None

    @field_validator("upc_code", mode="before")
    @classmethod
    def validate_upc(cls, value):
        upc = normalize_upc(value)
        if upc is None:
            raise ValueError(f"UPC must have 8 to 14 digits, got {value!r}")
        return upc

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, value):
        name = clean_product_name(value) if isinstance(value, str) else ""
        if not name:
            raise ValueError("product name is required")
        return name

    @field_validator("ingredients_text", mode="before")
    @classmethod
    def blank_text_is_none(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def has_ingredient_data(self) -> bool:
        return bool(self.ingredients) or bool(self.ingredients_text)


ImportAction = Literal["created", "updated", "skipped"]
IngestionState = Literal["CANDIDATE", "SKIPPED", "CREATED_EMPTY", "CLASSIFIED", "FALLBACK_RAW", "PRECLASSIFIED"]


class ImportResult(BaseModel):
    action: ImportAction
    state: IngestionState
    upc_code: str
    product_id: Optional[int] = None
    ingredients_created: int = 0
    allergens_created: int = 0
    fallback: bool = False
    dry_run: bool = False


class BatchSummary(BaseModel):
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    aborted: bool = False

    def record(self, result: ImportResult):
        self.processed += 1
        if result.action == "created":
            self.created += 1
        elif result.action == "updated":
            self.updated += 1
        else:
            self.skipped += 1

    def merge(self, other: "BatchSummary"):
        self.processed += other.processed
        self.created += other.created
        self.updated += other.updated
        self.skipped += other.skipped
        self.errors += other.errors
        self.aborted = self.aborted or other.aborted


class AllergenResponse(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class IngredientResponse(BaseModel):
    id: int
    title: str
    allergens: List[AllergenResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ProductResponse(BaseModel):
    id: int
    name: str
    upc_code: str
    ingredient_image_path: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    ingredients: List[IngredientResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ProductSummary(BaseModel):
    id: int
    name: str
    upc_code: str
    ingredient_image_path: Optional[str] = None
    created_at: Optional[datetime] = None
    ingredients_count: int = 0
    allergens_count: int = 0


class PaginatedProducts(BaseModel):
    data: List[ProductSummary]
    current_page: int
    per_page: int
    total: int
    last_page: int


class ProductAllergenMatch(ProductSummary):
    matching_allergens: List[str] = []


class ProductsByAllergensResponse(BaseModel):
    products: List[ProductAllergenMatch]
    searched_allergens: List[str]
    count: int
