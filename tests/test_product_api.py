import inspect
import os
import shutil
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from db import models
from env import UPLOADED_IMAGES_DIR
from interfaces.productModels import ClassificationResult, ProductCandidate
from main import app
from routers.product import create_product, get_ingestion_pipeline
from services.classifier_client import AllergenClassifierClient
from services.errors import ClassificationUnavailable
from services.ingestion_pipeline import ProductIngestionPipeline
from services.source_adapters import SourceAdapter


def add_product(db, name, upc, ingredients=()):
    product = models.Product(name=name, upc_code=upc)
    for title, allergens in ingredients:
        ingredient = models.Ingredient(title=title)
        ingredient.allergens = [models.Allergen(name=allergen) for allergen in allergens]
        product.ingredients.append(ingredient)
    db.add(product)
    db.commit()
    return product


@pytest.fixture
def catalog(db_session):
    return {
        "mate": add_product(db_session, "Club Mate", "4000177712", [("Water", []), ("Sugar", [])]),
        "nutella": add_product(db_session, "Nutella", "3017620422003", [
            ("Sugar", []), ("Hazelnuts", ["tree nuts"]), ("Skimmed milk powder", ["milk"]),
        ]),
        "tofu": add_product(db_session, "Tofu Natur", "4008391212345", [("Soybeans", ["Soy"])]),
    }


@pytest.fixture
def classifier():
    classifier = MagicMock(spec=AllergenClassifierClient)
    classifier.classify_image.return_value = ClassificationResult(
        ingredients=[{"name": "Cocoa mass", "allergens": []}, {"name": "Milk", "allergens": ["milk"]}]
    )
    classifier.classify_text.return_value = ClassificationResult(ingredients=[{"name": "Water", "allergens": []}])
    return classifier


@pytest.fixture
def source():
    adapter = MagicMock(spec=SourceAdapter)
    adapter.fetch_by_upc.return_value = None
    return adapter


@pytest.fixture
def pipeline_override(session_factory, classifier, source):
    def override():
        db = session_factory()
        try:
            yield ProductIngestionPipeline(db, classifier, {"openfoodfacts": source})
        finally:
            db.close()

    app.dependency_overrides[get_ingestion_pipeline] = override
    yield
    app.dependency_overrides.pop(get_ingestion_pipeline, None)


def test_ping(client):
    assert client.get("/api/ping").json() == {"message": "Ping!"}


def test_lifespan_creates_upload_directory():
    shutil.rmtree(UPLOADED_IMAGES_DIR, ignore_errors=True)

    with TestClient(app) as started:
        assert started.get("/api/ping").status_code == 200

    assert os.path.isdir(UPLOADED_IMAGES_DIR)


def test_list_products_paginated(client, catalog):
    response = client.get("/api/products", params={"per_page": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["last_page"] == 2
    assert len(body["data"]) == 2
    counts = {item["name"]: (item["ingredients_count"], item["allergens_count"]) for item in client.get(
        "/api/products").json()["data"]}
    assert counts["Nutella"] == (3, 2)
    assert counts["Club Mate"] == (2, 0)


def test_list_products_rejects_large_page_size(client):
    assert client.get("/api/products", params={"per_page": 51}).status_code == 422


def test_search_by_name_and_upc(client, catalog):
    by_name = client.get("/api/products/search", params={"query": "nute"}).json()
    by_upc = client.get("/api/products/search", params={"query": "40001777"}).json()

    assert [p["name"] for p in by_name["products"]] == ["Nutella"]
    assert [p["upc_code"] for p in by_upc["products"]] == ["4000177712"]
    assert client.get("/api/products/search", params={"query": ""}).status_code == 422


def test_products_by_allergens(client, catalog):
    response = client.get("/api/products/allergens", params={"allergens": "MILK, soy"})

    body = response.json()
    assert response.status_code == 200
    assert body["searched_allergens"] == ["milk", "soy"]
    assert {p["name"]: p["matching_allergens"] for p in body["products"]} == {
        "Nutella": ["milk"],
        "Tofu Natur": ["soy"],
    }
    assert client.get("/api/products/allergens", params={"allergens": " , "}).status_code == 422


def test_get_product(client, catalog):
    response = client.get(f"/api/products/{catalog['nutella'].id}")

    assert response.status_code == 200
    ingredients = response.json()["ingredients"]
    assert [i["title"] for i in ingredients] == ["Sugar", "Hazelnuts", "Skimmed milk powder"]
    assert ingredients[1]["allergens"][0]["name"] == "tree nuts"
    assert client.get("/api/products/9999").status_code == 404


def test_get_by_upc_from_catalog(client, catalog, pipeline_override, source):
    response = client.get("/api/products/upc/4000177712")

    assert response.status_code == 200
    assert response.json()["name"] == "Club Mate"
    source.fetch_by_upc.assert_not_called()


def test_get_by_upc_imports_from_source(client, pipeline_override, source, classifier):
    source.fetch_by_upc.return_value = ProductCandidate(
        upc_code="4000177799", name="Mineralwasser", ingredients_text="Wasser, Kohlensäure, Salz"
    )

    response = client.get("/api/products/upc/4000177799")

    assert response.status_code == 200
    assert response.json()["ingredients"][0]["title"] == "Water"
    classifier.classify_text.assert_called_once_with("Wasser, Kohlensäure, Salz")


def test_get_by_upc_not_found_and_invalid(client, pipeline_override):
    assert client.get("/api/products/upc/4000177799").status_code == 404
    assert client.get("/api/products/upc/12ab").status_code == 422


def test_create_product_requires_auth(client, pipeline_override):
    response = client.post(
        "/api/products",
        data={"name": "Schokolade", "upc_code": "4000417025005"},
        files={"ingredient_image": ("label.jpg", b"jpegbytes", "image/jpeg")},
    )
    assert response.status_code == 401


def test_create_product_from_image(client, auth_headers, pipeline_override, classifier):
    response = client.post(
        "/api/products",
        headers=auth_headers,
        data={"name": "Schokolade", "upc_code": "4000417025005"},
        files={"ingredient_image": ("label.jpg", b"jpegbytes", "image/jpeg")},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["ingredients_created"] == 2
    assert not body["fallback"]
    assert [i["title"] for i in body["product"]["ingredients"]] == ["Cocoa mass", "Milk"]
    assert os.path.exists(body["product"]["ingredient_image_path"])
    classifier.classify_image.assert_called_once_with(b"jpegbytes", "image/jpeg")


def test_create_product_with_classifier_down_keeps_placeholder(client, auth_headers, pipeline_override, classifier):
    classifier.classify_image.side_effect = ClassificationUnavailable("timeout")

    response = client.post(
        "/api/products",
        headers=auth_headers,
        data={"name": "Schokolade", "upc_code": "4000417025005"},
        files={"ingredient_image": ("label.png", b"pngbytes", "image/png")},
    )

    assert response.status_code == 201
    assert response.json()["fallback"]
    assert response.json()["ingredients_created"] == 1


def test_create_product_runs_in_threadpool():
    # classifier calls block, so the endpoint must run in the threadpool
    assert not inspect.iscoroutinefunction(create_product)


def test_create_product_validation(client, auth_headers, pipeline_override, catalog):
    gif = client.post(
        "/api/products", headers=auth_headers,
        data={"name": "Schokolade", "upc_code": "4000417025005"},
        files={"ingredient_image": ("label.gif", b"GIF89a", "image/gif")},
    )
    duplicate = client.post(
        "/api/products", headers=auth_headers,
        data={"name": "Club Mate", "upc_code": "4000177712"},
        files={"ingredient_image": ("label.jpg", b"jpegbytes", "image/jpeg")},
    )
    bad_upc = client.post(
        "/api/products", headers=auth_headers,
        data={"name": "Schokolade", "upc_code": "123"},
        files={"ingredient_image": ("label.jpg", b"jpegbytes", "image/jpeg")},
    )

    assert gif.status_code == 422
    assert duplicate.status_code == 422
    assert bad_upc.status_code == 422
