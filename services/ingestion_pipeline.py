from contextlib import contextmanager
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import DisconnectionError, IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from db import models
from db.repositories import ProductRepository
from interfaces.productModels import BatchSummary, ClassificationResult, ImportResult, ProductCandidate
from logger_manager import log_critical, log_error, log_info, log_warning
from services.classifier_client import AllergenClassifierClient
from services.errors import (
    ClassificationError,
    InvalidCandidate,
    PersistenceFailure,
    SourceUnavailable,
    StorageUnavailable,
)
from services.source_adapters import SourceAdapter
from services.text_normalizer import normalize_upc

FALLBACK_IMAGE_TITLE = "Unclassified ingredient image"
GENERAL_ALLERGEN_TITLE = "General Allergen Information"

_STORAGE_ERRORS = (OperationalError, InterfaceError, DisconnectionError)

# (classification or None, state, fallback ingredient title)
Classification = Tuple[Optional[ClassificationResult], str, Optional[str]]


def validate_candidate(record) -> ProductCandidate:
    """Turn a raw import record into a ProductCandidate or raise InvalidCandidate."""
    if isinstance(record, ProductCandidate):
        return record
    if not isinstance(record, dict):
        raise InvalidCandidate(f"expected an object, got {type(record).__name__}")
    try:
        return ProductCandidate.model_validate(record)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'record'}: {error['msg']}" for error in e.errors()
        )
        raise InvalidCandidate(problems) from e


class ProductIngestionPipeline:
    """
    Brings products into the catalog from import files, uploaded images and
    external sources.

    Every product is written in its own transaction: the product row, its
    ingredients and their allergens are committed together or not at all.
    Classifier failures never fail an import; the raw ingredient text is
    stored as a single unclassified ingredient instead.
    """

    def __init__(self, db: Session, classifier: AllergenClassifierClient,
                 adapters: Mapping[str, SourceAdapter], source_priority: Optional[Sequence[str]] = None):
        self.db = db
        self.repository = ProductRepository(db)
        self.classifier = classifier
        self.adapters = adapters
        self.source_priority = list(source_priority) if source_priority else list(adapters.keys())

    # storage helpers

    def _find_existing(self, upc_code: str) -> Optional[models.Product]:
        try:
            return self.repository.find_product_by_upc(upc_code)
        except _STORAGE_ERRORS as e:
            self.db.rollback()
            log_critical(f"Product store unavailable while looking up UPC {upc_code}: {e}")
            raise StorageUnavailable(f"Product store unavailable: {e}") from e

    @contextmanager
    def _transaction(self, upc_code: str):
        try:
            yield
            self.db.commit()
        except _STORAGE_ERRORS as e:
            self.db.rollback()
            log_critical(f"Product store unavailable while writing UPC {upc_code}: {e}")
            raise StorageUnavailable(f"Product store unavailable: {e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            log_error(f"Failed to persist product {upc_code}, transaction rolled back: {e}", e)
            raise PersistenceFailure(f"Failed to persist product {upc_code}: {e}") from e
        except Exception:
            self.db.rollback()
            raise

    # classification

    def _classify_text(self, candidate: ProductCandidate) -> Classification:
        if candidate.ingredients:
            return ClassificationResult(ingredients=candidate.ingredients), "PRECLASSIFIED", None
        if not candidate.ingredients_text:
            return None, "CREATED_EMPTY", None

        raw_title = candidate.ingredients_text
        try:
            result = self.classifier.classify_text(candidate.ingredients_text)
        except ClassificationError as e:
            log_warning(f"Classification failed for {candidate.upc_code}, storing raw ingredient text: {e}")
            return None, "FALLBACK_RAW", raw_title
        if not result.ingredients and not result.general_allergens:
            log_warning(f"Classifier found no ingredients for {candidate.upc_code}, storing raw ingredient text")
            return None, "FALLBACK_RAW", raw_title
        return result, "CLASSIFIED", None

    def _classify_image(self, candidate: ProductCandidate, image_bytes: bytes, mime_type: str) -> Classification:
        try:
            result = self.classifier.classify_image(image_bytes, mime_type)
        except ClassificationError as e:
            log_warning(f"Image classification failed for {candidate.upc_code}, storing placeholder: {e}")
            return None, "FALLBACK_RAW", FALLBACK_IMAGE_TITLE
        if not result.ingredients and not result.general_allergens:
            log_warning(f"Classifier read no ingredients from image for {candidate.upc_code}")
            return None, "FALLBACK_RAW", FALLBACK_IMAGE_TITLE
        return result, "CLASSIFIED", None

    def _store_ingredients(self, product: models.Product, classification: Classification) -> Tuple[int, int]:
        result, _, fallback_title = classification
        if result is None:
            if fallback_title:
                self.repository.create_ingredient(product, fallback_title)
                return 1, 0
            return 0, 0

        ingredients_created = 0
        allergens_created = 0
        first_ingredient = None
        for item in result.ingredients:
            ingredient = self.repository.create_ingredient(product, item.name)
            ingredients_created += 1
            if first_ingredient is None:
                first_ingredient = ingredient
            for allergen in item.allergens:
                self.repository.create_allergen(ingredient, allergen)
                allergens_created += 1

        if result.general_allergens:
            if first_ingredient is None:
                first_ingredient = self.repository.create_ingredient(product, GENERAL_ALLERGEN_TITLE)
                ingredients_created += 1
            for allergen in result.general_allergens:
                self.repository.create_allergen(first_ingredient, allergen)
                allergens_created += 1

        return ingredients_created, allergens_created

    # import paths

    def _create(self, candidate: ProductCandidate, classify: Callable[[], Classification],
                image_path: Optional[str] = None) -> ImportResult:
        upc = candidate.upc_code
        try:
            with self._transaction(upc):
                product = self.repository.create_product(candidate.name, upc, image_path)
                classification = classify()
                ingredients_created, allergens_created = self._store_ingredients(product, classification)
        except StorageUnavailable:
            raise
        except PersistenceFailure as e:
            if isinstance(e.__cause__, IntegrityError):
                existing = self._find_existing(upc)
                if existing is not None:
                    log_info(f"UPC {upc} was stored by a concurrent import, skipping")
                    return ImportResult(action="skipped", state="SKIPPED", upc_code=upc, product_id=existing.id)
            raise

        state = classification[1]
        log_info(f"Created product {product.id} ({upc}) with {ingredients_created} ingredients"
                 f" and {allergens_created} allergens [{state}]")
        return ImportResult(
            action="created",
            state=state,
            upc_code=upc,
            product_id=product.id,
            ingredients_created=ingredients_created,
            allergens_created=allergens_created,
            fallback=state == "FALLBACK_RAW",
        )

    def _update_existing(self, product: models.Product, candidate: ProductCandidate, dry_run: bool) -> ImportResult:
        upc = candidate.upc_code
        skipped = ImportResult(action="skipped", state="SKIPPED", upc_code=upc, product_id=product.id, dry_run=dry_run)

        if self.repository.count_ingredients(product.id) > 0:
            log_info(f"Product {upc} already has ingredients, skipping")
            return skipped
        if not candidate.has_ingredient_data():
            log_info(f"Product {upc} exists and candidate has no ingredient data, skipping")
            return skipped
        if dry_run:
            return ImportResult(action="updated", state="CANDIDATE", upc_code=upc, product_id=product.id, dry_run=True)

        with self._transaction(upc):
            classification = self._classify_text(candidate)
            ingredients_created, allergens_created = self._store_ingredients(product, classification)

        state = classification[1]
        log_info(f"Added {ingredients_created} ingredients to existing product {product.id} ({upc}) [{state}]")
        return ImportResult(
            action="updated",
            state=state,
            upc_code=upc,
            product_id=product.id,
            ingredients_created=ingredients_created,
            allergens_created=allergens_created,
            fallback=state == "FALLBACK_RAW",
        )

    def import_product(self, candidate: ProductCandidate, dry_run: bool = False) -> ImportResult:
        """
        Create the product for `candidate`, or fill in ingredients of an
        existing product that has none. Products that already have ingredients
        are skipped, which makes repeated imports of the same UPC a no-op.

        With `dry_run` nothing is written and the classifier is not called; the
        result reports the action that would have been taken.
        """
        existing = self._find_existing(candidate.upc_code)
        if existing is not None:
            return self._update_existing(existing, candidate, dry_run)

        if dry_run:
            state = "CREATED_EMPTY" if not candidate.has_ingredient_data() else "CANDIDATE"
            return ImportResult(action="created", state=state, upc_code=candidate.upc_code, dry_run=True)

        return self._create(candidate, lambda: self._classify_text(candidate))

    def import_product_image(self, candidate: ProductCandidate, image_bytes: bytes, mime_type: str,
                             image_path: Optional[str] = None) -> ImportResult:
        """Create a product whose ingredients are read from a photo of its ingredient list."""
        existing = self._find_existing(candidate.upc_code)
        if existing is not None:
            log_info(f"Product {candidate.upc_code} already exists, image import skipped")
            return ImportResult(action="skipped", state="SKIPPED", upc_code=candidate.upc_code, product_id=existing.id)

        return self._create(candidate, lambda: self._classify_image(candidate, image_bytes, mime_type), image_path)

    def import_from_upc(self, upc: str) -> Optional[models.Product]:
        """
        Return the stored product for `upc`, importing it from the first source
        that knows it when it is not stored yet. None when no source has it.
        """
        upc_code = normalize_upc(upc)
        if upc_code is None:
            raise InvalidCandidate(f"UPC must have 8 to 14 digits, got {upc!r}")

        existing = self._find_existing(upc_code)
        if existing is not None:
            return existing

        for source_id in self.source_priority:
            adapter = self.adapters.get(source_id)
            if adapter is None:
                log_warning(f"No adapter registered for source '{source_id}'")
                continue
            try:
                candidate = adapter.fetch_by_upc(upc_code)
            except SourceUnavailable as e:
                log_warning(f"Source '{source_id}' failed for UPC {upc_code}, trying next source: {e}")
                continue
            if candidate is None:
                continue

            if candidate.upc_code != upc_code:
                candidate = candidate.model_copy(update={"upc_code": upc_code})
            log_info(f"UPC {upc_code} found in source '{source_id}'")
            result = self.import_product(candidate)
            return self.repository.get_product(result.product_id) if result.product_id else self._find_existing(upc_code)

        log_info(f"UPC {upc_code} not found in any source")
        return None

    def bulk_scrape(self, source: str, limit: int, category: Optional[str] = None) -> List[ProductCandidate]:
        adapter = self.adapters.get(source)
        if adapter is None:
            raise ValueError(f"Unknown source '{source}'. Available: {', '.join(self.adapters.keys())}")
        log_info(f"Scraping up to {limit} products from '{source}' (category={category or 'all'})")
        return adapter.search(limit, category)

    def import_batch(self, records: Iterable, dry_run: bool = False) -> BatchSummary:
        """
        Import many records and report counts. Bad records and failed writes are
        counted and logged without stopping the batch; only an unreachable
        store ends it early, with `aborted` set on the summary.
        """
        summary = BatchSummary()
        for index, record in enumerate(records, start=1):
            try:
                candidate = validate_candidate(record)
            except InvalidCandidate as e:
                log_warning(f"Skipping record {index}: {e}")
                summary.processed += 1
                summary.skipped += 1
                continue

            try:
                result = self.import_product(candidate, dry_run=dry_run)
            except StorageUnavailable as e:
                log_critical(f"Batch import aborted at record {index}: {e}")
                summary.errors += 1
                summary.aborted = True
                break
            except PersistenceFailure as e:
                log_error(f"Record {index} ({candidate.upc_code}) failed: {e}")
                summary.errors += 1
                continue
            except Exception as e:
                log_error(f"Unexpected error importing record {index} ({candidate.upc_code}): {e}", e)
                self.db.rollback()
                summary.errors += 1
                continue

            summary.record(result)

        log_info(f"Batch import finished: {summary.model_dump()}")
        return summary

    def scrape_and_import(self, source: str, limit: int, category: Optional[str] = None,
                          dry_run: bool = False) -> BatchSummary:
        candidates = self.bulk_scrape(source, limit, category)
        return self.import_batch(candidates, dry_run=dry_run)
