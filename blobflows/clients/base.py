import structlog

from blobflows.models.blob import BlobMetadata, EncodedBlob, FragmentSet, NodeConfirmation
from blobflows.models.ledger import LedgerObject, Transaction, TransactionResult
from blobflows.models.primitives import Address, BlobId, CoinType, Digest, NodeId, ObjectId


class Signer:
    """
    Signs transactions with the account's key and submits them for execution.
    Key management lives outside of blobflows.
    """

    @property
    def address(self) -> Address:
        raise NotImplementedError

    async def sign_and_execute(
        self,
        log: structlog.stdlib.BoundLogger,
        transaction: Transaction,
    ) -> Digest:
        raise NotImplementedError


class LedgerClient:
    async def close(self):
        pass

    async def submit(
        self,
        log: structlog.stdlib.BoundLogger,
        transaction: Transaction,
    ) -> Digest:
        raise NotImplementedError

    async def wait_for_finality(
        self,
        log: structlog.stdlib.BoundLogger,
        digest: Digest,
    ) -> TransactionResult:
        raise NotImplementedError

    async def get_balance(
        self,
        log: structlog.stdlib.BoundLogger,
        owner: Address,
        coin_type: CoinType,
    ) -> int:
        raise NotImplementedError

    async def get_object(
        self,
        log: structlog.stdlib.BoundLogger,
        object_id: ObjectId,
    ) -> LedgerObject | None:
        raise NotImplementedError

    async def execute(
        self,
        log: structlog.stdlib.BoundLogger,
        transaction: Transaction,
    ) -> TransactionResult:
        digest = await self.submit(log, transaction)
        log.info("Transaction submitted", digest=digest)
        return await self.wait_for_finality(log, digest)


class BlobEncoder:
    """
    Erasure-codes a payload into per-node slivers. Must be deterministic.
    """

    async def encode(
        self,
        log: structlog.stdlib.BoundLogger,
        data: bytes,
    ) -> EncodedBlob:
        raise NotImplementedError


class StorageNodeClient:
    async def close(self):
        pass

    async def store(
        self,
        log: structlog.stdlib.BoundLogger,
        node_id: NodeId,
        blob_id: BlobId,
        fragments: FragmentSet,
        metadata: BlobMetadata,
        object_id: ObjectId,
        deletable: bool,
        timeout: float,
    ) -> NodeConfirmation:
        """
        Store `fragments` and `metadata` on one node and return its signed confirmation.
        Implementations must give up after `timeout` seconds.
        """
        raise NotImplementedError


class FaucetClient:
    async def close(self):
        pass

    async def request_funds(
        self,
        log: structlog.stdlib.BoundLogger,
        recipient: Address,
    ) -> None:
        raise NotImplementedError
