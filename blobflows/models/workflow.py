from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field

from blobflows.models.blob import BlobObjectRecord
from blobflows.models.common import StrictModel
from blobflows.models.primitives import BlobId, ObjectId


class Phase(str, Enum):
    IDLE = "idle"
    PROVISIONING = "provisioning"
    ENCODING = "encoding"
    REGISTERING = "registering"
    DISTRIBUTING = "distributing"
    CERTIFYING = "certifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.SUCCEEDED, Phase.FAILED)


ALLOWED_TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    # `Idle -> Certifying` is only taken when resuming certification
    Phase.IDLE: frozenset({Phase.PROVISIONING, Phase.CERTIFYING}),
    Phase.PROVISIONING: frozenset({Phase.ENCODING}),
    Phase.ENCODING: frozenset({Phase.REGISTERING}),
    Phase.REGISTERING: frozenset({Phase.DISTRIBUTING}),
    Phase.DISTRIBUTING: frozenset({Phase.CERTIFYING}),
    Phase.CERTIFYING: frozenset({Phase.SUCCEEDED}),
    Phase.SUCCEEDED: frozenset(),
    Phase.FAILED: frozenset(),
}


def can_transition(current: Phase, target: Phase) -> bool:
    if target == Phase.FAILED:
        return not current.is_terminal
    return target in ALLOWED_TRANSITIONS[current]


class WorkflowState(StrictModel):
    """
    Process-local state of a single upload. Never shared between uploads.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    phase: Phase = Phase.IDLE
    blob_id: Optional[BlobId] = None
    blob_object: Optional[BlobObjectRecord] = None
    last_error: Optional[BaseException] = None
    # phase in which the workflow failed
    failed_phase: Optional[Phase] = None


class StatusUpdate(StrictModel):
    phase: Phase
    previous_phase: Phase
    message: str
    blob_id: Optional[BlobId] = None
    object_id: Optional[ObjectId] = None
    error: Optional[str] = Field(
        None,
        description="Description of the failure, set when `phase` is `failed`",
    )
