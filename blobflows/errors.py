from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Optional

from blobflows.models.workflow import Phase

if TYPE_CHECKING:
    from blobflows.models.blob import ConfirmationSet
    from blobflows.models.ledger import TransactionResult
    from blobflows.models.primitives import BlobId, NodeId, ObjectId


class ErrorKind(str, Enum):
    FAUCET_UNAVAILABLE = "faucet_unavailable"
    SWAP_FAILED = "swap_failed"
    ENCODING_FAILED = "encoding_failed"
    EXECUTION_FAILED = "execution_failed"
    OBJECT_NOT_FOUND = "object_not_found"
    QUORUM_NOT_REACHED = "quorum_not_reached"
    INVALID_CONFIRMATIONS = "invalid_confirmations"
    TIMEOUT = "timeout"


class BlobFlowsError(Exception):
    pass


class InvalidTransitionError(BlobFlowsError):
    def __init__(self, current: Phase, target: Phase):
        super().__init__(f"Cannot transition from `{current.value}` to `{target.value}`")
        self.current = current
        self.target = target


class StepError(BlobFlowsError):
    kind: ClassVar[ErrorKind]


class TransactionFailedMixin:
    """
    Keeps the finalized transaction around for inspection.
    """

    result: Optional["TransactionResult"]

    def _set_result(self, result: Optional["TransactionResult"]) -> None:
        self.result = result

    @property
    def digest(self) -> str | None:
        return self.result.digest if self.result is not None else None


### Funding


class FundingError(StepError):
    pass


class FaucetUnavailable(FundingError):
    kind = ErrorKind.FAUCET_UNAVAILABLE


class SwapFailed(FundingError, TransactionFailedMixin):
    kind = ErrorKind.SWAP_FAILED

    def __init__(self, message: str, result: Optional["TransactionResult"] = None):
        super().__init__(message)
        self._set_result(result)


### Encoding


class EncodingError(StepError):
    kind = ErrorKind.ENCODING_FAILED


### Registration


class RegistrationError(StepError):
    pass


class RegistrationExecutionFailed(RegistrationError, TransactionFailedMixin):
    kind = ErrorKind.EXECUTION_FAILED

    def __init__(self, message: str, result: Optional["TransactionResult"] = None):
        super().__init__(message)
        self._set_result(result)


class BlobObjectNotFound(RegistrationError):
    """
    The ledger did not produce (or does not hold) a blob object of the expected type.
    Signals a protocol or type mismatch; retrying will not help.
    """

    kind = ErrorKind.OBJECT_NOT_FOUND


### Distribution


class DistributionError(StepError):
    pass


class NodeTimeout(DistributionError):
    kind = ErrorKind.TIMEOUT

    def __init__(self, node_id: "NodeId", timeout: float):
        super().__init__(f"Storage node {node_id} did not respond within {timeout}s")
        self.node_id = node_id
        self.timeout = timeout


class QuorumNotReached(DistributionError):
    kind = ErrorKind.QUORUM_NOT_REACHED

    def __init__(
        self,
        confirmations: "ConfirmationSet",
        required: int,
        failures: dict["NodeId", BaseException],
        deadline_exceeded: bool = False,
    ):
        super().__init__(
            f"Collected {len(confirmations)} of {required} required confirmations "
            f"from {confirmations.total_nodes} storage nodes"
            + (" before the distribution deadline" if deadline_exceeded else "")
        )
        self.confirmations = confirmations
        self.required = required
        self.failures = failures
        self.deadline_exceeded = deadline_exceeded


### Certification


class CertificationError(StepError):
    pass


class ConfirmationsRejected(CertificationError):
    """
    The confirmations do not attest to the blob object being certified.
    Collecting them again for the right blob and object is the only way forward.
    """

    kind = ErrorKind.INVALID_CONFIRMATIONS


class CertificationExecutionFailed(CertificationError, TransactionFailedMixin):
    kind = ErrorKind.EXECUTION_FAILED

    def __init__(self, message: str, result: Optional["TransactionResult"] = None):
        super().__init__(message)
        self._set_result(result)


### Upload


class UploadError(BlobFlowsError):
    """
    Terminal failure of an upload, raised by the orchestrator.

    `cause` is the error raised by the failing phase. Whatever the workflow learned before failing
    is attached, so the caller can decide to retry from scratch (`object_id` is None),
    resume distribution and certification (`object_id` is set),
    or resume certification only (`confirmations` is set).
    """

    def __init__(
        self,
        phase: Phase,
        cause: BaseException,
        blob_id: Optional["BlobId"] = None,
        object_id: Optional["ObjectId"] = None,
        confirmations: Optional["ConfirmationSet"] = None,
    ):
        super().__init__(f"Upload failed while {phase.value}: {cause}")
        self.phase = phase
        self.cause = cause
        self.blob_id = blob_id
        self.object_id = object_id
        self.confirmations = confirmations

    @property
    def kind(self) -> ErrorKind | None:
        if isinstance(self.cause, StepError):
            return self.cause.kind
        return None


### Collaborators


class LedgerRpcError(BlobFlowsError):
    def __init__(self, method: str, code: int | None, message: str):
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.message = message
