from typing import Any

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection

from src.config import settings
from src.core.exceptions import RecordNotFoundError
from src.db.mongo import get_collection
from src.models.owner import BusinessOwner, Owner, PetOwner, ProfileOwner

logger = structlog.get_logger()


def _object_id(value: str) -> ObjectId | str:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return value


def _target(owner: Owner) -> tuple[AsyncIOMotorCollection, dict[str, Any]]:
    if isinstance(owner, PetOwner):
        return get_collection(settings.mongo_pets_collection), {"_id": _object_id(owner.pet_id)}
    if isinstance(owner, BusinessOwner):
        return get_collection(settings.mongo_businesses_collection), {"ownerId": _object_id(owner.user_id)}
    return get_collection(settings.mongo_users_collection), {"_id": _object_id(owner.user_id)}


async def _update(owner: Owner, update: dict[str, Any]) -> None:
    collection, query = _target(owner)
    result = await collection.update_one(query, update)
    if result.matched_count == 0:
        raise RecordNotFoundError(f"No {owner.kind.value} record for {query}")


async def attach_image(owner: Owner, image_url: str) -> None:
    if isinstance(owner, ProfileOwner):
        update = {"$set": {"profileImage": image_url}}
    else:
        update = {"$addToSet": {"images": image_url}}
    await _update(owner, update)
    logger.info("image_attached", owner=owner.kind.value, image_url=image_url)


async def detach_image(owner: Owner, image_url: str) -> None:
    if isinstance(owner, ProfileOwner):
        update: dict[str, Any] = {"$unset": {"profileImage": ""}}
    else:
        update = {"$pull": {"images": image_url}}
    await _update(owner, update)
    logger.info("image_detached", owner=owner.kind.value, image_url=image_url)
