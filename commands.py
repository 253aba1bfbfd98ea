"""
Command line entry points for catalog maintenance.

    allergen-check import-products products.json [--dry-run]
    allergen-check scrape --source openfoodfacts --limit 100 [--category dairy] [--dry-run]
    allergen-check scheduled-scrape [--force]      # cron: 0 2 * * *
    allergen-check lookup-upc 4000177712
    allergen-check classify "Zucker, Weizenmehl, Vollmilchpulver"
    allergen-check categories
"""
import argparse
import json
import sys
from typing import List, Optional

from db import models  # registers the tables on Base.metadata
from db.database import Base, SessionLocal, engine
from interfaces.productModels import BatchSummary, ProductResponse
from logger_manager import log_error, log_info
from services.classifier_client import AllergenClassifierClient
from services.errors import ClassificationError, InvalidCandidate, StorageUnavailable
from services.ingestion_pipeline import ProductIngestionPipeline
from services.scheduled_scraping import run_scheduled_scrape
from services.source_adapters import AVAILABLE_CATEGORIES, build_default_adapters
from utils.file_operations import load_json_file


def build_pipeline(db) -> ProductIngestionPipeline:
    return ProductIngestionPipeline(db, AllergenClassifierClient(), build_default_adapters())


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="allergen-check", description="Product catalog maintenance.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import-products", help="Import products from a JSON file.")
    import_parser.add_argument("file", help="JSON array of {name, upc, ingredients: [{name, allergens}]}")
    import_parser.add_argument("--dry-run", action="store_true", help="Report what would happen without writing.")

    scrape_parser = subparsers.add_parser("scrape", help="Scrape German products from an external source.")
    scrape_parser.add_argument("--source", default="openfoodfacts", choices=["openfoodfacts", "rewe", "edeka"])
    scrape_parser.add_argument("--limit", type=int, default=100, help="Maximum number of products to fetch.")
    scrape_parser.add_argument("--category", default=None, choices=list(AVAILABLE_CATEGORIES.keys()))
    scrape_parser.add_argument("--dry-run", action="store_true", help="Report what would happen without writing.")

    scheduled_parser = subparsers.add_parser("scheduled-scrape", help="Run the daily scraping job.")
    scheduled_parser.add_argument("--force", action="store_true", help="Run even if the job ran recently.")

    lookup_parser = subparsers.add_parser("lookup-upc", help="Find or import a product by UPC.")
    lookup_parser.add_argument("upc")

    classify_parser = subparsers.add_parser("classify", help="Classify an ingredient text.")
    classify_parser.add_argument("text")

    subparsers.add_parser("categories", help="List the categories available for scraping.")

    args = parser.parse_args(argv)
    if getattr(args, "limit", 1) < 1:
        parser.error("--limit must be at least 1")
    return args


def print_summary(summary: BatchSummary, dry_run: bool = False):
    if dry_run:
        print("DRY RUN - no changes were written")
    for key in ("processed", "created", "updated", "skipped", "errors"):
        print(f"{key.capitalize():<10} {getattr(summary, key)}")
    if summary.aborted:
        print("Aborted: product store unavailable")


def import_products(db, path: str, dry_run: bool = False) -> int:
    try:
        records = load_json_file(path)
    except FileNotFoundError:
        print(f"File not found: {path}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid JSON in {path}: {e}", file=sys.stderr)
        return 1
    if not isinstance(records, list):
        print("Import file must contain a JSON array of products", file=sys.stderr)
        return 1

    log_info(f"Importing {len(records)} records from {path}")
    summary = build_pipeline(db).import_batch(records, dry_run=dry_run)
    print_summary(summary, dry_run)
    return 1 if summary.aborted else 0


def scrape(db, source: str, limit: int, category: Optional[str], dry_run: bool) -> int:
    pipeline = build_pipeline(db)
    candidates = pipeline.bulk_scrape(source, limit, category)
    print(f"Fetched {len(candidates)} products from {source}")
    summary = pipeline.import_batch(candidates, dry_run=dry_run)
    print_summary(summary, dry_run)
    return 1 if summary.aborted else 0


def scheduled_scrape(db, force: bool) -> int:
    result = run_scheduled_scrape(db, build_pipeline(db), force=force)
    print(f"Scheduled scrape: {result.status}")
    if result.strategy:
        print(f"Strategy: {result.strategy}")
    if result.summary:
        print_summary(result.summary)
    if result.failed_categories:
        print(f"Failed categories: {', '.join(result.failed_categories)}")
    return 1 if result.status == "aborted" else 0


def lookup_upc(db, upc: str) -> int:
    try:
        product = build_pipeline(db).import_from_upc(upc)
    except InvalidCandidate as e:
        print(str(e), file=sys.stderr)
        return 1
    if product is None:
        print(f"No product found for UPC {upc}")
        return 1
    print(json.dumps(ProductResponse.model_validate(product).model_dump(mode="json"), indent=2, ensure_ascii=False))
    return 0


def classify(text: str) -> int:
    try:
        result = AllergenClassifierClient().classify_text(text)
    except (ClassificationError, ValueError) as e:
        print(f"Classification failed: {e}", file=sys.stderr)
        return 1
    print(json.dumps(result.model_dump(), indent=2, ensure_ascii=False))
    return 0


def list_categories() -> int:
    for slug, label in AVAILABLE_CATEGORIES.items():
        print(f"{slug:<24} {label}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.command == "classify":
        return classify(args.text)
    if args.command == "categories":
        return list_categories()

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if args.command == "import-products":
            return import_products(db, args.file, args.dry_run)
        if args.command == "scrape":
            return scrape(db, args.source, args.limit, args.category, args.dry_run)
        if args.command == "scheduled-scrape":
            return scheduled_scrape(db, args.force)
        if args.command == "lookup-upc":
            return lookup_upc(db, args.upc)
    except StorageUnavailable as e:
        log_error(f"Command '{args.command}' failed, product store unavailable: {e}")
        print(f"Product store unavailable: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()
    return 1


if __name__ == "__main__":
    sys.exit(main())
