class IngestionError(Exception):
    """Base class for failures raised while bringing product data into the catalog."""


class ClassificationError(IngestionError):
    pass


class ClassificationUnavailable(ClassificationError):
    """The classifier could not be reached, timed out or is not configured."""


class ClassificationMalformed(ClassificationError):
    """The classifier answered but the answer does not have the expected shape."""


class SourceUnavailable(IngestionError):
    """An external product source failed at the transport, HTTP or payload level."""


class InvalidCandidate(IngestionError):
    """A record lacks the fields a product needs (UPC, name)."""


class PersistenceFailure(IngestionError):
    """A write failed; the surrounding transaction was rolled back."""


class StorageUnavailable(PersistenceFailure):
    """The relational store cannot be reached at all."""


class DuplicateAllergy(Exception):
    """A user allergy overlaps with one the user already has."""

    def __init__(self, allergy_text: str, existing_text: str):
        super().__init__(f"Allergy '{allergy_text}' overlaps with existing allergy '{existing_text}'")
        self.allergy_text = allergy_text
        self.existing_text = existing_text
