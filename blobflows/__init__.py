from blobflows.blobflows import BlobFlows
from blobflows.clients.base import (
    BlobEncoder,
    FaucetClient,
    LedgerClient,
    Signer,
    StorageNodeClient,
)
from blobflows.errors import (
    BlobFlowsError,
    BlobObjectNotFound,
    CertificationError,
    CertificationExecutionFailed,
    DistributionError,
    EncodingError,
    ErrorKind,
    FaucetUnavailable,
    FundingError,
    NodeTimeout,
    QuorumNotReached,
    RegistrationError,
    RegistrationExecutionFailed,
    SwapFailed,
    UploadError,
)
from blobflows.models.blob import (
    Blob,
    BlobMetadata,
    BlobObjectRecord,
    BlobObjectStatus,
    ConfirmationSet,
    EncodedBlob,
    NodeConfirmation,
    Sliver,
)
from blobflows.models.config import NetworkConfig, UploadOptions
from blobflows.models.workflow import Phase, StatusUpdate

__all__ = [
    "BlobFlows",
    "BlobEncoder",
    "FaucetClient",
    "LedgerClient",
    "Signer",
    "StorageNodeClient",
    "BlobFlowsError",
    "BlobObjectNotFound",
    "CertificationError",
    "CertificationExecutionFailed",
    "DistributionError",
    "EncodingError",
    "ErrorKind",
    "FaucetUnavailable",
    "FundingError",
    "NodeTimeout",
    "QuorumNotReached",
    "RegistrationError",
    "RegistrationExecutionFailed",
    "SwapFailed",
    "UploadError",
    "Blob",
    "BlobMetadata",
    "BlobObjectRecord",
    "BlobObjectStatus",
    "ConfirmationSet",
    "EncodedBlob",
    "NodeConfirmation",
    "Sliver",
    "NetworkConfig",
    "UploadOptions",
    "Phase",
    "StatusUpdate",
]
