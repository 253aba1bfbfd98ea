import pytest

from db import models
from services.allergy_service import UserAllergyService
from services.auth_service import create_user
from services.errors import DuplicateAllergy


@pytest.fixture
def product(db_session):
    product = models.Product(name="Nutella", upc_code="3017620422003")
    hazelnuts = models.Ingredient(title="Hazelnuts", allergens=[models.Allergen(name="tree nuts")])
    milk = models.Ingredient(title="Skimmed milk powder", allergens=[models.Allergen(name="Milk")])
    lecithin = models.Ingredient(title="Soy lecithin", allergens=[models.Allergen(name="soy"), models.Allergen(name="milk")])
    product.ingredients = [hazelnuts, milk, lecithin]
    db_session.add(product)
    db_session.commit()
    return product


class TestUserAllergyService:

    def test_overlapping_allergies_rejected(self, db_session):
        user = create_user(db_session, "testuser", "testuser@example.com", "testpassword")
        service = UserAllergyService(db_session)
        service.add_allergy(user.id, "Peanuts")

        with pytest.raises(DuplicateAllergy):
            service.add_allergy(user.id, "peanut")
        with pytest.raises(DuplicateAllergy):
            service.add_allergy(user.id, "roasted PEANUTS")
        service.add_allergy(user.id, "milk")

        assert [a.allergy_text for a in service.list_allergies(user.id)] == ["Peanuts", "milk"]

    def test_other_users_are_independent(self, db_session):
        first = create_user(db_session, "first", "first@example.com", "testpassword")
        second = create_user(db_session, "second", "second@example.com", "testpassword")
        service = UserAllergyService(db_session)

        service.add_allergy(first.id, "milk")
        service.add_allergy(second.id, "milk")

        assert service.get_allergy(second.id, service.list_allergies(first.id)[0].id) is None

    def test_update_may_keep_own_text(self, db_session):
        user = create_user(db_session, "testuser", "testuser@example.com", "testpassword")
        service = UserAllergyService(db_session)
        milk = service.add_allergy(user.id, "milk")
        service.add_allergy(user.id, "soy")

        assert service.update_allergy(user.id, milk.id, "Milk protein").allergy_text == "Milk protein"
        with pytest.raises(DuplicateAllergy):
            service.update_allergy(user.id, milk.id, "soy")
        assert service.update_allergy(user.id, 9999, "eggs") is None


def test_allergy_crud(client, auth_headers):
    created = client.post("/api/user/allergies", json={"allergy_text": "Peanuts"}, headers=auth_headers)
    assert created.status_code == 201
    allergy_id = created.json()["id"]

    duplicate = client.post("/api/user/allergies", json={"allergy_text": "peanut"}, headers=auth_headers)
    assert duplicate.status_code == 409

    updated = client.put(f"/api/user/allergies/{allergy_id}", json={"allergy_text": "Tree nuts"}, headers=auth_headers)
    assert updated.status_code == 200
    assert updated.json()["allergy_text"] == "Tree nuts"

    listed = client.get("/api/user/allergies", headers=auth_headers).json()
    assert [a["allergy_text"] for a in listed] == ["Tree nuts"]

    assert client.delete(f"/api/user/allergies/{allergy_id}", headers=auth_headers).status_code == 200
    assert client.delete(f"/api/user/allergies/{allergy_id}", headers=auth_headers).status_code == 404
    assert client.put("/api/user/allergies/9999", json={"allergy_text": "eggs"}, headers=auth_headers).status_code == 404


def test_allergy_validation(client, auth_headers):
    assert client.post("/api/user/allergies", json={"allergy_text": "   "}, headers=auth_headers).status_code == 422
    assert client.post("/api/user/allergies", json={"allergy_text": "x" * 501}, headers=auth_headers).status_code == 422


def test_profile_lists_allergies(client, auth_headers):
    client.post("/api/user/allergies", json={"allergy_text": "milk"}, headers=auth_headers)

    response = client.get("/api/user/profile", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["email"] == "testuser@example.com"
    assert [a["allergy_text"] for a in response.json()["allergies"]] == ["milk"]


def test_product_safety_conflict(client, auth_headers, product):
    client.post("/api/user/allergies", json={"allergy_text": "Nuts"}, headers=auth_headers)
    client.post("/api/user/allergies", json={"allergy_text": "eggs"}, headers=auth_headers)

    response = client.get(f"/api/user/product-safety/{product.id}", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["product"] == {"id": product.id, "name": "Nutella", "upc_code": "3017620422003"}
    assert body["is_safe"] is False
    assert body["potential_conflicts"] == ["Nuts"]
    assert body["product_allergens"] == ["tree nuts", "milk", "soy"]


def test_product_safety_safe_and_missing(client, auth_headers, product):
    client.post("/api/user/allergies", json={"allergy_text": "sesame"}, headers=auth_headers)

    assert client.get(f"/api/user/product-safety/{product.id}", headers=auth_headers).json()["is_safe"] is True
    assert client.get("/api/user/product-safety/9999", headers=auth_headers).status_code == 404
