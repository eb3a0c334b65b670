import pytest

from src.core.exceptions import InvalidOwnerError
from src.models.owner import (
    BusinessOwner,
    OwnerKind,
    PetOwner,
    ProfileOwner,
    owner_from_document,
    owner_to_document,
    parse_owner,
)
from tests.helpers import PET_ID, TEST_USER


class TestParseOwner:
    def test_pet(self) -> None:
        owner = parse_owner("pet", PET_ID, TEST_USER.id)
        assert owner == PetOwner(pet_id=PET_ID, user_id=TEST_USER.id)
        assert owner.kind is OwnerKind.PET

    def test_business_ignores_pet_id(self) -> None:
        owner = parse_owner("business", PET_ID, TEST_USER.id)
        assert owner == BusinessOwner(user_id=TEST_USER.id)

    def test_profile(self) -> None:
        assert parse_owner("profile", None, TEST_USER.id) == ProfileOwner(user_id=TEST_USER.id)

    @pytest.mark.parametrize("kind", [None, "", "avatar", "PET"])
    def test_invalid_kind(self, kind: str | None) -> None:
        with pytest.raises(InvalidOwnerError, match="Invalid or missing 'type' field"):
            parse_owner(kind, PET_ID, TEST_USER.id)

    def test_pet_requires_pet_id(self) -> None:
        with pytest.raises(InvalidOwnerError, match="Missing petId"):
            parse_owner("pet", None, TEST_USER.id)

    def test_pet_id_must_be_object_id(self) -> None:
        with pytest.raises(InvalidOwnerError, match="Invalid petId"):
            parse_owner("pet", "not-an-id", TEST_USER.id)


class TestOwnerDocuments:
    def test_pet_document_carries_pet_id(self) -> None:
        doc = owner_to_document(PetOwner(pet_id=PET_ID, user_id=TEST_USER.id))
        assert doc == {"kind": "pet", "user_id": TEST_USER.id, "pet_id": PET_ID}

    def test_profile_document_has_no_pet_id(self) -> None:
        doc = owner_to_document(ProfileOwner(user_id=TEST_USER.id))
        assert "pet_id" not in doc

    def test_from_document(self) -> None:
        owner = owner_from_document({"kind": "business", "user_id": TEST_USER.id})
        assert owner == BusinessOwner(user_id=TEST_USER.id)
