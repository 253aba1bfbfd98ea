from typing import Iterable, List

from interfaces.allergyModels import SafetyVerdict
from services.text_normalizer import normalize_allergen_term


def terms_conflict(first: str, second: str) -> bool:
    """Two allergen terms conflict when either normalized form contains the other."""
    first = normalize_allergen_term(first)
    second = normalize_allergen_term(second)
    if not first or not second:
        return False
    return first in second or second in first


def _unique_normalized(terms: Iterable[str]) -> List[str]:
    seen = []
    for term in terms:
        normalized = normalize_allergen_term(term)
        if normalized and normalized not in seen:
            seen.append(normalized)
    return seen


def check_safety(user_terms: Iterable[str], product_terms: Iterable[str]) -> SafetyVerdict:
    """
    Compare a user's allergy declarations with a product's allergen names.

    Matching is a case-insensitive substring test in both directions, so
    "nuts" flags "tree nuts" and "peanut allergy" flags "peanut". Conflicts are
    reported in the user's own wording.
    """
    product_allergens = _unique_normalized(product_terms)

    conflicts = []
    reported = set()
    for term in user_terms:
        normalized = normalize_allergen_term(term)
        if not normalized or normalized in reported:
            continue
        if any(normalized in allergen or allergen in normalized for allergen in product_allergens):
            reported.add(normalized)
            conflicts.append(term)

    return SafetyVerdict(
        is_safe=not conflicts,
        conflicts=conflicts,
        product_allergens=product_allergens,
    )
