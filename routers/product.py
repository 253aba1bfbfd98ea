from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from db.database import get_db
from db.models import User
from env import MAX_IMAGE_BYTES
from interfaces.productModels import PaginatedProducts, ProductCandidate, ProductResponse, ProductsByAllergensResponse
from logger_manager import log_debug, log_error, log_info, log_warning
from services.auth_service import get_current_active_user
from services.classifier_client import SUPPORTED_IMAGE_TYPES, AllergenClassifierClient
from services.ingestion_pipeline import ProductIngestionPipeline
from services.product_service import ProductService
from services.source_adapters import build_default_adapters
from services.text_normalizer import clean_product_name, normalize_upc
from utils.file_operations import delete_file, save_uploaded_image

router = APIRouter()


def get_ingestion_pipeline(db: Session = Depends(get_db)) -> ProductIngestionPipeline:
    return ProductIngestionPipeline(db, AllergenClassifierClient(), build_default_adapters())


@router.get("", response_model=PaginatedProducts)
def list_products(
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=50),
    db: Session = Depends(get_db),
):
    log_info(f"List products endpoint called (page={page}, per_page={per_page})")
    try:
        return ProductService(db).list_products(page, per_page)
    except Exception as e:
        log_error(f"Error listing products: {str(e)}", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/search")
def search_products(
    query: str = Query(..., min_length=1, max_length=255),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
):
    log_info(f"Search products endpoint called: {query}")
    try:
        products = ProductService(db).search_products(query, limit)
    except Exception as e:
        log_error(f"Error searching products: {str(e)}", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")
    return {"products": products, "count": len(products), "query": query}


@router.get("/allergens", response_model=ProductsByAllergensResponse)
def products_by_allergens(
    allergens: str = Query(..., min_length=1, description="Comma separated allergen names"),
    limit: int = Query(20, ge=1, le=50),
    db: Session = Depends(get_db),
):
    names = []
    for name in allergens.split(","):
        name = name.strip().lower()
        if name and name not in names:
            names.append(name)
    if not names:
        raise HTTPException(status_code=422, detail="At least one allergen is required")

    log_info(f"Products by allergens endpoint called: {names}")
    try:
        return ProductService(db).products_by_allergens(names, limit)
    except Exception as e:
        log_error(f"Error filtering products by allergens: {str(e)}", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/upc/{upc}", response_model=ProductResponse)
def get_product_by_upc(upc: str, pipeline: ProductIngestionPipeline = Depends(get_ingestion_pipeline)):
    log_info(f"Get product by UPC endpoint called: {upc}")
    upc_code = normalize_upc(upc)
    if upc_code is None:
        raise HTTPException(status_code=422, detail="UPC must have 8 to 14 digits")

    try:
        product = pipeline.import_from_upc(upc_code)
    except Exception as e:
        log_error(f"Error looking up UPC {upc_code}: {str(e)}", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")

    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductService(pipeline.db).get_product_by_id(product.id)


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(product_id: int, db: Session = Depends(get_db)):
    log_info(f"Get product endpoint called: {product_id}")
    product = ProductService(db).get_product_by_id(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("", status_code=status.HTTP_201_CREATED)
def create_product(
    name: str = Form(..., min_length=1, max_length=255),
    upc_code: str = Form(...),
    ingredient_image: UploadFile = File(...),
    current_user: User = Depends(get_current_active_user),
    pipeline: ProductIngestionPipeline = Depends(get_ingestion_pipeline),
):
    log_info(f"Create product endpoint called by user {current_user.id}")

    normalized_upc = normalize_upc(upc_code)
    if normalized_upc is None:
        raise HTTPException(status_code=422, detail="UPC must have 8 to 14 digits")
    if not clean_product_name(name):
        raise HTTPException(status_code=422, detail="Product name is required")
    if ingredient_image.content_type not in SUPPORTED_IMAGE_TYPES:
        raise HTTPException(status_code=422, detail="Ingredient image must be a JPEG or PNG file")

    image_bytes = ingredient_image.file.read()
    if not image_bytes:
        raise HTTPException(status_code=422, detail="Ingredient image is empty")
    if len(image_bytes) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=422, detail=f"Ingredient image must not exceed {MAX_IMAGE_BYTES // 1024} KB")

    if pipeline.repository.find_product_by_upc(normalized_upc) is not None:
        log_warning(f"UPC {normalized_upc} already exists")
        raise HTTPException(status_code=422, detail="A product with this UPC code already exists")

    candidate = ProductCandidate(upc_code=normalized_upc, name=name, source="upload")
    image_path = save_uploaded_image(image_bytes, ingredient_image.content_type)
    try:
        result = pipeline.import_product_image(candidate, image_bytes, ingredient_image.content_type, image_path)
    except Exception as e:
        delete_file(image_path)
        log_error(f"Error creating product {normalized_upc}: {str(e)}", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")

    if result.action != "created":
        delete_file(image_path)
        raise HTTPException(status_code=422, detail="A product with this UPC code already exists")

    log_debug(f"Import result: {result.model_dump()}")
    product = ProductService(pipeline.db).get_product_by_id(result.product_id)
    return {
        "message": "Product created successfully",
        "product": ProductResponse.model_validate(product),
        "ingredients_created": result.ingredients_created,
        "allergens_created": result.allergens_created,
        "fallback": result.fallback,
    }
