from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from logger_manager import log_debug
from . import models


class ProductRepository:
    """
    Catalog reads and writes. Write methods only add and flush; the caller owns
    the transaction and decides when to commit or roll back.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_product_by_upc(self, upc_code: str) -> Optional[models.Product]:
        return self.db.query(models.Product).filter(models.Product.upc_code == upc_code).first()

    def get_product(self, product_id: int) -> Optional[models.Product]:
        return (
            self.db.query(models.Product)
            .options(selectinload(models.Product.ingredients).selectinload(models.Ingredient.allergens))
            .filter(models.Product.id == product_id)
            .first()
        )

    def create_product(self, name: str, upc_code: str, ingredient_image_path: str = None) -> models.Product:
        db_product = models.Product(name=name, upc_code=upc_code, ingredient_image_path=ingredient_image_path)
        self.db.add(db_product)
        self.db.flush()
        log_debug(f"Created product {db_product.id} for UPC {upc_code}")
        return db_product

    def create_ingredient(self, product: models.Product, title: str) -> models.Ingredient:
        db_ingredient = models.Ingredient(product=product, title=title)
        self.db.add(db_ingredient)
        self.db.flush()
        return db_ingredient

    def create_allergen(self, ingredient: models.Ingredient, name: str) -> models.Allergen:
        db_allergen = models.Allergen(ingredient=ingredient, name=name)
        self.db.add(db_allergen)
        self.db.flush()
        return db_allergen

    def count_ingredients(self, product_id: int) -> int:
        return self.db.query(func.count(models.Ingredient.id)).filter(
            models.Ingredient.product_id == product_id
        ).scalar()

    def count_products(self) -> int:
        return self.db.query(func.count(models.Product.id)).scalar()

    def allergen_names_for_product(self, product_id: int) -> List[str]:
        rows = (
            self.db.query(models.Allergen.name)
            .join(models.Ingredient, models.Allergen.ingredient_id == models.Ingredient.id)
            .filter(models.Ingredient.product_id == product_id)
            .order_by(models.Allergen.id)
            .all()
        )
        return [row[0] for row in rows]

    def count_details(self, product_ids: Sequence[int]) -> Dict[int, Tuple[int, int]]:
        """(ingredients_count, allergens_count) per product id."""
        if not product_ids:
            return {}
        ingredient_counts = dict(
            self.db.query(models.Ingredient.product_id, func.count(models.Ingredient.id))
            .filter(models.Ingredient.product_id.in_(product_ids))
            .group_by(models.Ingredient.product_id)
            .all()
        )
        allergen_counts = dict(
            self.db.query(models.Ingredient.product_id, func.count(models.Allergen.id))
            .join(models.Allergen, models.Allergen.ingredient_id == models.Ingredient.id)
            .filter(models.Ingredient.product_id.in_(product_ids))
            .group_by(models.Ingredient.product_id)
            .all()
        )
        return {
            product_id: (ingredient_counts.get(product_id, 0), allergen_counts.get(product_id, 0))
            for product_id in product_ids
        }

    def list_products(self, page: int, per_page: int) -> Tuple[List[models.Product], int]:
        total = self.count_products()
        products = (
            self.db.query(models.Product)
            .order_by(models.Product.created_at.desc(), models.Product.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return products, total

    def search_products(self, query: str, limit: int) -> List[models.Product]:
        pattern = f"%{query}%"
        return (
            self.db.query(models.Product)
            .filter(or_(models.Product.name.ilike(pattern), models.Product.upc_code.like(pattern)))
            .order_by(models.Product.name)
            .limit(limit)
            .all()
        )

    def products_with_allergens(self, allergen_names: Sequence[str], limit: int) -> List[Tuple[models.Product, List[str]]]:
        """Products having an allergen whose name equals one of `allergen_names` (case-insensitive)."""
        wanted = [name.lower() for name in allergen_names]
        rows = (
            self.db.query(models.Product.id, models.Allergen.name)
            .join(models.Ingredient, models.Ingredient.product_id == models.Product.id)
            .join(models.Allergen, models.Allergen.ingredient_id == models.Ingredient.id)
            .filter(func.lower(models.Allergen.name).in_(wanted))
            .order_by(models.Product.id)
            .all()
        )
        matches: Dict[int, List[str]] = {}
        for product_id, allergen_name in rows:
            names = matches.setdefault(product_id, [])
            if allergen_name.lower() not in names:
                names.append(allergen_name.lower())

        product_ids = list(matches.keys())[:limit]
        if not product_ids:
            return []
        products = self.db.query(models.Product).filter(models.Product.id.in_(product_ids)).all()
        by_id = {product.id: product for product in products}
        return [(by_id[product_id], matches[product_id]) for product_id in product_ids if product_id in by_id]


class UserAllergyRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_for_user(self, user_id: int) -> List[models.UserAllergy]:
        return (
            self.db.query(models.UserAllergy)
            .filter(models.UserAllergy.user_id == user_id)
            .order_by(models.UserAllergy.id)
            .all()
        )

    def get_for_user(self, user_id: int, allergy_id: int) -> Optional[models.UserAllergy]:
        return (
            self.db.query(models.UserAllergy)
            .filter(models.UserAllergy.user_id == user_id, models.UserAllergy.id == allergy_id)
            .first()
        )

    def create(self, user_id: int, allergy_text: str) -> models.UserAllergy:
        db_allergy = models.UserAllergy(user_id=user_id, allergy_text=allergy_text)
        self.db.add(db_allergy)
        self.db.commit()
        self.db.refresh(db_allergy)
        return db_allergy

    def update(self, db_allergy: models.UserAllergy, allergy_text: str) -> models.UserAllergy:
        db_allergy.allergy_text = allergy_text
        self.db.commit()
        self.db.refresh(db_allergy)
        return db_allergy

    def delete(self, db_allergy: models.UserAllergy):
        self.db.delete(db_allergy)
        self.db.commit()
