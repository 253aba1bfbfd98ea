import unittest

from services.conflict_matcher import check_safety, terms_conflict


class TestTermsConflict(unittest.TestCase):

    def test_substring_in_either_direction(self):
        self.assertTrue(terms_conflict("nuts", "tree nuts"))
        self.assertTrue(terms_conflict("tree nuts", "nuts"))
        self.assertTrue(terms_conflict("Peanut Allergy", "peanut"))

    def test_symmetry(self):
        pairs = [("milk", "Milk Powder"), ("soy", "eggs"), ("", "milk"), ("SESAME", "sesame seeds")]
        for first, second in pairs:
            self.assertEqual(terms_conflict(first, second), terms_conflict(second, first))

    def test_empty_terms_never_conflict(self):
        self.assertFalse(terms_conflict("", "milk"))
        self.assertFalse(terms_conflict("   ", "milk"))


class TestCheckSafety(unittest.TestCase):

    def test_conflicting_allergy(self):
        verdict = check_safety(["milk"], ["milk", "soy"])
        self.assertFalse(verdict.is_safe)
        self.assertEqual(verdict.conflicts, ["milk"])
        self.assertEqual(verdict.product_allergens, ["milk", "soy"])

    def test_reports_users_own_wording(self):
        verdict = check_safety(["Tree Nuts ", "gluten"], ["nuts", "wheat"])
        self.assertEqual(verdict.conflicts, ["Tree Nuts "])

    def test_product_allergens_deduplicated_and_normalized(self):
        verdict = check_safety([], ["Milk", "milk ", "SOY", ""])
        self.assertTrue(verdict.is_safe)
        self.assertEqual(verdict.product_allergens, ["milk", "soy"])

    def test_no_allergens_is_safe(self):
        verdict = check_safety(["peanuts"], [])
        self.assertTrue(verdict.is_safe)
        self.assertEqual(verdict.conflicts, [])

    def test_adding_user_terms_never_makes_product_safer(self):
        product = ["milk", "eggs"]
        base = check_safety(["soy"], product)
        more = check_safety(["soy", "egg"], product)
        self.assertTrue(base.is_safe)
        self.assertFalse(more.is_safe)
        self.assertTrue(set(base.conflicts) <= set(more.conflicts))

    def test_adding_matching_product_allergen_only_makes_product_unsafe(self):
        user_terms = ["peanut allergy", "Sesame"]
        product = ["milk"]
        verdicts = [check_safety(user_terms, product)]
        for allergen in ("peanut", "soy", "sesame seeds", "eggs"):
            product = product + [allergen]
            verdicts.append(check_safety(user_terms, product))

        self.assertTrue(verdicts[0].is_safe)
        self.assertFalse(verdicts[1].is_safe)
        for before, after in zip(verdicts, verdicts[1:]):
            self.assertFalse(after.is_safe and not before.is_safe)
            self.assertTrue(set(before.conflicts) <= set(after.conflicts))
        self.assertEqual(verdicts[-1].conflicts, ["peanut allergy", "Sesame"])

    def test_duplicate_user_terms_reported_once(self):
        verdict = check_safety(["milk", "milk"], ["milk"])
        self.assertEqual(verdict.conflicts, ["milk"])

    def test_duplicates_differing_in_case_keep_first_wording(self):
        verdict = check_safety(["Milk", "milk", " MILK "], ["milk"])
        self.assertEqual(verdict.conflicts, ["Milk"])


if __name__ == '__main__':
    unittest.main()
