from enum import Enum
from typing import Literal, Optional

from pydantic import Field

from blobflows.models.common import FrozenModel, StrictModel
from blobflows.models.primitives import Address, BlobId, Epochs, NodeId, ObjectId


class Blob(FrozenModel):
    """
    An immutable payload as it is declared to the ledger.
    Identity is derived from the encoding, so the same bytes always map to the same `blob_id`.
    """

    blob_id: BlobId
    root_hash: bytes
    size: int = Field(ge=0)
    deletable: bool
    epochs: Epochs = Field(gt=0)
    owner: Address


class BlobMetadata(FrozenModel):
    encoding_type: str
    unencoded_length: int
    encoded_length: int
    # one digest per sliver pair, hex encoded
    hashes: list[str] = Field(default_factory=list)


class Sliver(FrozenModel):
    pair_index: int
    kind: Literal["primary", "secondary"]
    data: bytes


# the slivers destined for one storage node
FragmentSet = list[Sliver]


class EncodedBlob(FrozenModel):
    blob_id: BlobId
    root_hash: bytes
    metadata: BlobMetadata
    fragments_by_node: dict[NodeId, FragmentSet]

    @property
    def size(self) -> int:
        return self.metadata.unencoded_length

    def to_blob(self, owner: Address, epochs: Epochs, deletable: bool) -> Blob:
        return Blob(
            blob_id=self.blob_id,
            root_hash=self.root_hash,
            size=self.size,
            deletable=deletable,
            epochs=epochs,
            owner=owner,
        )


class BlobObjectStatus(str, Enum):
    REGISTERED = "registered"
    CERTIFIED = "certified"


class BlobObjectRecord(StrictModel):
    object_id: ObjectId
    blob_id: BlobId
    owner: Address
    status: BlobObjectStatus = BlobObjectStatus.REGISTERED
    deletable: bool = True
    epochs: Optional[Epochs] = None

    def certified(self) -> "BlobObjectRecord":
        return self.model_copy(update={"status": BlobObjectStatus.CERTIFIED})


class NodeConfirmation(FrozenModel):
    """
    A storage node's signed acknowledgement that it holds its slivers of `blob_id`.
    """

    node_id: NodeId
    blob_id: BlobId
    object_id: Optional[ObjectId] = None
    serialized_message: bytes
    signature: bytes


class ConfirmationSet(StrictModel):
    blob_id: BlobId
    total_nodes: int
    confirmations: dict[NodeId, NodeConfirmation] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.confirmations)

    def add(self, confirmation: NodeConfirmation) -> None:
        if confirmation.blob_id != self.blob_id:
            raise ValueError(
                f"Confirmation for blob {confirmation.blob_id} does not belong to {self.blob_id}"
            )
        self.confirmations[confirmation.node_id] = confirmation
