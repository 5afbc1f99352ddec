from typing import Optional

from pydantic import Field

from blobflows.models.common import StrictModel
from blobflows.models.primitives import CoinType, NodeId, ObjectId, StructTag

# base units per whole gas token
MIST_PER_SUI = 1_000_000_000


class NetworkConfig(StrictModel):
    network: str = Field(
        "testnet",
        description="Name of the network, used for logging only",
    )
    endpoint: str = Field(
        description="Ledger JSON-RPC endpoint",
    )
    faucet_url: Optional[str] = Field(
        None,
        description="Faucet host; leave unset on networks without a faucet",
    )

    gas_token_type: CoinType = "0x2::sui::SUI"
    payment_token_type: CoinType = Field(
        description="Coin type used to pay for storage",
    )
    exchange_ids: list[ObjectId] = Field(
        default_factory=list,
        description="Fixed-rate exchange objects trading gas tokens for payment tokens",
    )
    system_object_id: ObjectId = Field(
        description="Storage system object; its package defines the blob object type",
    )
    blob_object_type: Optional[StructTag] = Field(
        None,
        description="Blob object type; derived from `system_object_id` when unset",
    )

    min_gas_balance: int = Field(MIST_PER_SUI, ge=0)
    min_payment_balance: int = Field(MIST_PER_SUI // 2, ge=0)
    swap_amount: int = Field(MIST_PER_SUI // 2, gt=0)

    quorum_threshold: Optional[int] = Field(
        None,
        gt=0,
        description="Confirmations required to certify; defaults to a Byzantine quorum of the node set",
    )
    per_node_timeout: float = Field(60, gt=0)
    distribution_deadline: float = Field(180, gt=0)
    node_retry_attempts: int = Field(
        1,
        ge=1,
        description="Attempts per node, including the first one",
    )

    finality_timeout: float = Field(60, gt=0)
    finality_poll_interval: float = Field(0.5, gt=0)

    storage_nodes: dict[NodeId, str] = Field(
        default_factory=dict,
        description="Base URL of each storage node",
    )

    def quorum_for(self, node_count: int) -> int:
        if self.quorum_threshold is not None:
            return self.quorum_threshold
        # tolerate f faulty nodes out of n = 3f + 1
        return node_count - (node_count - 1) // 3


class UploadOptions(StrictModel):
    epochs: int = Field(3, gt=0)
    deletable: bool = True
