from dataclasses import dataclass
from enum import Enum
from typing import Any

from bson import ObjectId

from src.core.exceptions import InvalidOwnerError


class OwnerKind(str, Enum):
    PET = "pet"
    BUSINESS = "business"
    PROFILE = "profile"


@dataclass(frozen=True)
class PetOwner:
    pet_id: str
    user_id: str

    kind = OwnerKind.PET


@dataclass(frozen=True)
class BusinessOwner:
    user_id: str

    kind = OwnerKind.BUSINESS


@dataclass(frozen=True)
class ProfileOwner:
    user_id: str

    kind = OwnerKind.PROFILE


Owner = PetOwner | BusinessOwner | ProfileOwner


def parse_owner(kind: str | None, pet_id: str | None, user_id: str) -> Owner:
    try:
        owner_kind = OwnerKind(kind)
    except ValueError:
        raise InvalidOwnerError("Invalid or missing 'type' field") from None

    if owner_kind is OwnerKind.PET:
        if not pet_id:
            raise InvalidOwnerError("Missing petId for type=pet")
        if not ObjectId.is_valid(pet_id):
            raise InvalidOwnerError("Invalid petId")
        return PetOwner(pet_id=pet_id, user_id=user_id)
    if owner_kind is OwnerKind.BUSINESS:
        return BusinessOwner(user_id=user_id)
    return ProfileOwner(user_id=user_id)


def owner_to_document(owner: Owner) -> dict[str, Any]:
    doc: dict[str, Any] = {"kind": owner.kind.value, "user_id": owner.user_id}
    if isinstance(owner, PetOwner):
        doc["pet_id"] = owner.pet_id
    return doc


def owner_from_document(doc: dict[str, Any]) -> Owner:
    return parse_owner(doc.get("kind"), doc.get("pet_id"), doc["user_id"])
