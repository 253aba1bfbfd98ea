from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from db.database import get_db
from db.models import User
from interfaces.allergyModels import (
    ProductSafetyResponse,
    UserAllergyCreate,
    UserAllergyResponse,
    UserProfileResponse,
)
from logger_manager import log_error, log_info, log_warning
from services.allergy_service import UserAllergyService
from services.auth_service import get_current_active_user
from services.errors import DuplicateAllergy
from services.product_service import ProductService

router = APIRouter()


@router.get("/profile", response_model=UserProfileResponse)
def get_profile(current_user: User = Depends(get_current_active_user), db: Session = Depends(get_db)):
    log_info(f"Profile endpoint called by user {current_user.id}")
    allergies = UserAllergyService(db).list_allergies(current_user.id)
    return UserProfileResponse(
        id=current_user.id,
        name=current_user.name,
        email=current_user.email,
        is_active=current_user.is_active,
        allergies=[UserAllergyResponse.model_validate(allergy) for allergy in allergies],
    )


@router.get("/allergies", response_model=List[UserAllergyResponse])
def list_allergies(current_user: User = Depends(get_current_active_user), db: Session = Depends(get_db)):
    return UserAllergyService(db).list_allergies(current_user.id)


@router.post("/allergies", response_model=UserAllergyResponse, status_code=status.HTTP_201_CREATED)
def add_allergy(
    allergy: UserAllergyCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    log_info(f"Add allergy endpoint called by user {current_user.id}")
    try:
        return UserAllergyService(db).add_allergy(current_user.id, allergy.allergy_text)
    except DuplicateAllergy as e:
        log_warning(str(e))
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        log_error(f"Error adding allergy: {str(e)}", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.put("/allergies/{allergy_id}", response_model=UserAllergyResponse)
def update_allergy(
    allergy_id: int,
    allergy: UserAllergyCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    log_info(f"Update allergy {allergy_id} endpoint called by user {current_user.id}")
    try:
        updated = UserAllergyService(db).update_allergy(current_user.id, allergy_id, allergy.allergy_text)
    except DuplicateAllergy as e:
        log_warning(str(e))
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        log_error(f"Error updating allergy: {str(e)}", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")
    if updated is None:
        raise HTTPException(status_code=404, detail="Allergy not found")
    return updated


@router.delete("/allergies/{allergy_id}")
def delete_allergy(
    allergy_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    log_info(f"Delete allergy {allergy_id} endpoint called by user {current_user.id}")
    if not UserAllergyService(db).delete_allergy(current_user.id, allergy_id):
        raise HTTPException(status_code=404, detail="Allergy not found")
    return {"message": "Allergy deleted successfully"}


@router.get("/product-safety/{product_id}", response_model=ProductSafetyResponse)
def check_product_safety(
    product_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    log_info(f"Product safety endpoint called by user {current_user.id} for product {product_id}")
    service = ProductService(db)
    product = service.get_product_by_id(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    try:
        return service.check_product_safety(current_user, product)
    except Exception as e:
        log_error(f"Error checking product safety: {str(e)}", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")
