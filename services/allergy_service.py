from typing import List, Optional

from sqlalchemy.orm import Session

from db.models import UserAllergy
from db.repositories import UserAllergyRepository
from logger_manager import log_info
from services.conflict_matcher import terms_conflict
from services.errors import DuplicateAllergy


class UserAllergyService:
    """
    CRUD for a user's allergy declarations. Two declarations of the same user
    may not overlap, i.e. neither normalized text may contain the other.
    """

    def __init__(self, db: Session):
        self.repository = UserAllergyRepository(db)

    def _check_overlap(self, user_id: int, allergy_text: str, exclude_id: Optional[int] = None):
        for existing in self.repository.list_for_user(user_id):
            if existing.id == exclude_id:
                continue
            if terms_conflict(allergy_text, existing.allergy_text):
                raise DuplicateAllergy(allergy_text, existing.allergy_text)

    def list_allergies(self, user_id: int) -> List[UserAllergy]:
        return self.repository.list_for_user(user_id)

    def get_allergy(self, user_id: int, allergy_id: int) -> Optional[UserAllergy]:
        return self.repository.get_for_user(user_id, allergy_id)

    def add_allergy(self, user_id: int, allergy_text: str) -> UserAllergy:
        self._check_overlap(user_id, allergy_text)
        allergy = self.repository.create(user_id, allergy_text)
        log_info(f"User {user_id} added allergy {allergy.id}")
        return allergy

    def update_allergy(self, user_id: int, allergy_id: int, allergy_text: str) -> Optional[UserAllergy]:
        allergy = self.repository.get_for_user(user_id, allergy_id)
        if allergy is None:
            return None
        self._check_overlap(user_id, allergy_text, exclude_id=allergy.id)
        return self.repository.update(allergy, allergy_text)

    def delete_allergy(self, user_id: int, allergy_id: int) -> bool:
        allergy = self.repository.get_for_user(user_id, allergy_id)
        if allergy is None:
            return False
        self.repository.delete(allergy)
        log_info(f"User {user_id} deleted allergy {allergy_id}")
        return True
