from dataclasses import dataclass

import firebase_admin
import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth, credentials
from firebase_admin.exceptions import FirebaseError
from starlette.concurrency import run_in_threadpool

from src.config import settings
from src.core.exceptions import AppError
from src.db.mongo import get_collection

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    firebase_uid: str


def get_firebase_app() -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        if settings.firebase_credentials_path:
            cred = credentials.Certificate(settings.firebase_credentials_path)
            return firebase_admin.initialize_app(cred)
        return firebase_admin.initialize_app()


async def verify_token(token: str) -> str:
    app = get_firebase_app()
    try:
        decoded = await run_in_threadpool(auth.verify_id_token, token, app)
    except (ValueError, auth.InvalidIdTokenError, auth.UserDisabledError) as e:
        logger.warning("token_rejected", error=str(e))
        raise AppError(status_code=401, detail="Invalid or expired token") from e
    except FirebaseError as e:
        # Includes CertificateFetchError when the signing keys cannot be fetched.
        logger.error("token_verification_unavailable", error=str(e), code=e.code)
        raise AppError(status_code=503, detail="Authentication unavailable") from e
    return decoded["uid"]


async def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedUser:
    if creds is None or not creds.credentials:
        raise AppError(status_code=401, detail="Missing bearer token")

    uid = await verify_token(creds.credentials)
    user = await get_collection(settings.mongo_users_collection).find_one({"firebaseUid": uid}, {"_id": 1})
    if user is None:
        logger.warning("token_user_not_found", firebase_uid=uid)
        raise AppError(status_code=401, detail="User not registered")
    return AuthenticatedUser(id=str(user["_id"]), firebase_uid=uid)
