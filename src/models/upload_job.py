from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from src.models.owner import Owner, owner_from_document, owner_to_document


class UploadState(str, Enum):
    VALIDATING = "validating"
    UPLOADING = "uploading"
    RESPONDED = "responded"
    PERSISTING = "persisting"
    ROLLING_BACK = "rolling_back"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    UPLOAD_FAILED = "upload_failed"


# Self-transitions are the recovery re-claim of a job whose worker died.
# rolling_back is written before the blob is deleted and never leads back to an attach.
TRANSITIONS: dict[UploadState, frozenset[UploadState]] = {
    UploadState.VALIDATING: frozenset({UploadState.UPLOADING}),
    UploadState.UPLOADING: frozenset({UploadState.RESPONDED, UploadState.UPLOAD_FAILED, UploadState.ROLLED_BACK}),
    UploadState.RESPONDED: frozenset({UploadState.PERSISTING}),
    UploadState.PERSISTING: frozenset({UploadState.COMMITTED, UploadState.ROLLING_BACK, UploadState.PERSISTING}),
    UploadState.ROLLING_BACK: frozenset({UploadState.ROLLED_BACK, UploadState.ROLLING_BACK}),
    UploadState.COMMITTED: frozenset(),
    UploadState.ROLLED_BACK: frozenset(),
    UploadState.UPLOAD_FAILED: frozenset(),
}

TERMINAL_STATES = frozenset(state for state, targets in TRANSITIONS.items() if not targets)


def can_transition(source: UploadState, target: UploadState) -> bool:
    return target in TRANSITIONS[source]


@dataclass
class UploadJob:
    blob_id: str
    owner: Owner
    image_url: str
    state: UploadState
    created_at: datetime
    updated_at: datetime
    attempts: int = 0
    error: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.blob_id,
            "owner": owner_to_document(self.owner),
            "image_url": self.image_url,
            "state": self.state.value,
            "attempts": self.attempts,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "UploadJob":
        return cls(
            blob_id=doc["_id"],
            owner=owner_from_document(doc["owner"]),
            image_url=doc["image_url"],
            state=UploadState(doc["state"]),
            attempts=doc.get("attempts", 0),
            error=doc.get("error"),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )
