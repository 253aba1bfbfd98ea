import math
from typing import List, Optional

from sqlalchemy.orm import Session

from db.models import Product, User
from db.repositories import ProductRepository, UserAllergyRepository
from interfaces.allergyModels import ProductReference, ProductSafetyResponse
from interfaces.productModels import PaginatedProducts, ProductAllergenMatch, ProductSummary, ProductsByAllergensResponse
from logger_manager import log_info
from services.conflict_matcher import check_safety
from utils.format_utils import current_timestamp, format_product_summary


class ProductService:
    """Read side of the catalog."""

    def __init__(self, db: Session):
        self.db = db
        self.repository = ProductRepository(db)

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        return self.repository.get_product(product_id)

    def list_products(self, page: int = 1, per_page: int = 15) -> PaginatedProducts:
        products, total = self.repository.list_products(page, per_page)
        counts = self.repository.count_details([product.id for product in products])
        return PaginatedProducts(
            data=[ProductSummary(**format_product_summary(product, counts)) for product in products],
            current_page=page,
            per_page=per_page,
            total=total,
            last_page=max(1, math.ceil(total / per_page)),
        )

    def search_products(self, query: str, limit: int = 10) -> List[ProductSummary]:
        products = self.repository.search_products(query.strip(), limit)
        counts = self.repository.count_details([product.id for product in products])
        return [ProductSummary(**format_product_summary(product, counts)) for product in products]

    def products_by_allergens(self, allergens: List[str], limit: int = 20) -> ProductsByAllergensResponse:
        matches = self.repository.products_with_allergens(allergens, limit)
        counts = self.repository.count_details([product.id for product, _ in matches])
        products = [
            ProductAllergenMatch(**format_product_summary(product, counts, matching_allergens=names))
            for product, names in matches
        ]
        return ProductsByAllergensResponse(products=products, searched_allergens=allergens, count=len(products))

    def check_product_safety(self, user: User, product: Product) -> ProductSafetyResponse:
        user_terms = [allergy.allergy_text for allergy in UserAllergyRepository(self.db).list_for_user(user.id)]
        verdict = check_safety(user_terms, self.repository.allergen_names_for_product(product.id))
        log_info(f"Safety check for user {user.id} on product {product.id}: safe={verdict.is_safe}")
        return ProductSafetyResponse(
            product=ProductReference.model_validate(product),
            is_safe=verdict.is_safe,
            potential_conflicts=verdict.conflicts,
            product_allergens=verdict.product_allergens,
            checked_at=current_timestamp(),
        )
