from datetime import datetime
from typing import Dict, Tuple

import pytz

from db.models import Product
from env import APP_TIMEZONE
from interfaces.productModels import ProductSummary


def current_timestamp() -> str:
    """ISO timestamp in the app's timezone"""
    return datetime.now(tz=pytz.timezone(APP_TIMEZONE)).isoformat()


def format_product_summary(product: Product, counts: Dict[int, Tuple[int, int]], **extra) -> dict:
    ingredients_count, allergens_count = counts.get(product.id, (0, 0))
    summary = ProductSummary(
        id=product.id,
        name=product.name,
        upc_code=product.upc_code,
        ingredient_image_path=product.ingredient_image_path,
        created_at=product.created_at,
        ingredients_count=ingredients_count,
        allergens_count=allergens_count,
    ).model_dump()
    summary.update(extra)
    return summary
