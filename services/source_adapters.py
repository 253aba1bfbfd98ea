import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional

import requests
from pydantic import ValidationError

from env import OPENFOODFACTS_API_URL, SOURCE_PAGE_DELAY, SOURCE_PAGE_SIZE, SOURCE_TIMEOUT
from interfaces.productModels import ProductCandidate
from logger_manager import log_debug, log_info, log_warning
from services.errors import SourceUnavailable
from services.text_normalizer import looks_like_target_language
from utils.fetch_data import create_http_session, extract_product_info, fetch_json

# Open Food Facts category slugs with their German labels
AVAILABLE_CATEGORIES = OrderedDict([
    ("beverages", "Getränke"),
    ("dairy", "Milchprodukte"),
    ("snacks", "Snacks"),
    ("cereals-and-potatoes", "Getreide und Kartoffeln"),
    ("meat", "Fleisch"),
    ("fish", "Fisch"),
    ("fruits-and-vegetables", "Obst und Gemüse"),
    ("frozen-foods", "Tiefkühlkost"),
    ("bakery", "Backwaren"),
    ("confectionery", "Süßwaren"),
])

SEARCH_FIELDS = ",".join([
    "code",
    "product_name",
    "ingredients_text",
    "ingredients_text_de",
    "allergens",
    "categories",
    "brands",
    "image_ingredients_url",
])


class SourceAdapter:
    """A product source the ingestion pipeline can look products up in."""

    source_id = "base"

    def fetch_by_upc(self, upc: str) -> Optional[ProductCandidate]:
        raise NotImplementedError

    def search(self, limit: int, category: Optional[str] = None) -> List[ProductCandidate]:
        raise NotImplementedError


class OpenFoodFactsAdapter(SourceAdapter):
    source_id = "openfoodfacts"

    def __init__(self, base_url: str = OPENFOODFACTS_API_URL, session: requests.Session = None,
                 timeout: float = SOURCE_TIMEOUT, page_size: int = SOURCE_PAGE_SIZE,
                 page_delay: float = SOURCE_PAGE_DELAY, sleep: Callable[[float], None] = time.sleep):
        self.base_url = base_url.rstrip("/")
        self.session = session or create_http_session()
        self.timeout = timeout
        self.page_size = page_size
        self.page_delay = page_delay
        self.sleep = sleep

    def fetch_by_upc(self, upc: str) -> Optional[ProductCandidate]:
        log_info(f"Looking up UPC {upc} on Open Food Facts")
        data = fetch_json(self.session, f"{self.base_url}/product/{upc}.json", timeout=self.timeout,
                          allow_not_found=True)
        if data is None:
            log_info(f"UPC {upc} not found on Open Food Facts")
            return None
        if not isinstance(data, dict):
            raise SourceUnavailable(f"Unexpected Open Food Facts payload for UPC {upc}")

        found, product = extract_product_info(data)
        if not found:
            log_info(f"UPC {upc} not found on Open Food Facts")
            return None
        return self._to_candidate(product)

    def search(self, limit: int, category: Optional[str] = None) -> List[ProductCandidate]:
        """
        Page through German products until `limit` usable records are collected,
        the source runs out, or a page fails. A failing page ends the search with
        whatever was collected so far.
        """
        if limit <= 0:
            return []

        page_size = min(self.page_size, limit)
        candidates: List[ProductCandidate] = []
        page = 1
        while len(candidates) < limit:
            params = {
                "countries": "germany",
                "fields": SEARCH_FIELDS,
                "page_size": page_size,
                "page": page,
                "json": 1,
            }
            if category:
                params["categories"] = category

            try:
                data = fetch_json(self.session, f"{self.base_url}/search", params=params, timeout=self.timeout)
            except SourceUnavailable as e:
                log_warning(f"Open Food Facts search stopped at page {page}: {e}")
                break

            products = data.get("products") if isinstance(data, dict) else None
            if not products:
                log_debug(f"Open Food Facts search returned no products on page {page}")
                break

            for product in products:
                candidate = self._to_candidate(product)
                if candidate is not None:
                    candidates.append(candidate)

            page += 1
            if len(candidates) < limit:
                self.sleep(self.page_delay)

        log_info(f"Open Food Facts search collected {min(len(candidates), limit)} products"
                 f" (category={category or 'all'})")
        return candidates[:limit]

    def _to_candidate(self, product: dict) -> Optional[ProductCandidate]:
        if not isinstance(product, dict):
            return None
        code = product.get("code")
        name = product.get("product_name")
        if not code or not name:
            return None

        ingredients_text = self._german_ingredients_text(product)
        if ingredients_text is None:
            log_debug(f"Discarding {code}: no German ingredient list")
            return None

        try:
            return ProductCandidate(
                upc_code=code,
                name=name,
                ingredients_text=ingredients_text,
                source=self.source_id,
                categories=product.get("categories") or None,
                brands=product.get("brands") or None,
                allergens=product.get("allergens") or None,
                image_ingredients_url=product.get("image_ingredients_url") or None,
            )
        except ValidationError as e:
            log_debug(f"Discarding {code}: {e.errors()[0].get('msg')}")
            return None

    @staticmethod
    def _german_ingredients_text(product: dict) -> Optional[str]:
        german = (product.get("ingredients_text_de") or "").strip()
        if german:
            return german
        general = (product.get("ingredients_text") or "").strip()
        if general and looks_like_target_language(general):
            return general
        return None


class ReweAdapter(SourceAdapter):
    source_id = "rewe"

    def fetch_by_upc(self, upc: str) -> Optional[ProductCandidate]:
        log_info(f"Rewe lookup for UPC {upc} is not implemented yet")
        return None

    def search(self, limit: int, category: Optional[str] = None) -> List[ProductCandidate]:
        log_info("Rewe search is not implemented yet")
        return []


class EdekaAdapter(SourceAdapter):
    source_id = "edeka"

    def fetch_by_upc(self, upc: str) -> Optional[ProductCandidate]:
        log_info(f"Edeka lookup for UPC {upc} is not implemented yet")
        return None

    def search(self, limit: int, category: Optional[str] = None) -> List[ProductCandidate]:
        log_info("Edeka search is not implemented yet")
        return []


def build_default_adapters() -> Dict[str, SourceAdapter]:
    """Adapters keyed by source id, in lookup priority order."""
    adapters = OrderedDict()
    for adapter in (OpenFoodFactsAdapter(), ReweAdapter(), EdekaAdapter()):
        adapters[adapter.source_id] = adapter
    return adapters
