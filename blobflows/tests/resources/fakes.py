import asyncio
import base64
import hashlib
import itertools
from typing import Any

import aiohttp
import structlog

from blobflows.clients.base import (
    BlobEncoder,
    FaucetClient,
    LedgerClient,
    Signer,
    StorageNodeClient,
)
from blobflows.errors import FaucetUnavailable
from blobflows.models.blob import (
    BlobMetadata,
    EncodedBlob,
    FragmentSet,
    NodeConfirmation,
    Sliver,
)
from blobflows.models.ledger import (
    ExecutionStatus,
    LedgerObject,
    MoveCall,
    ObjectChange,
    ObjectArg,
    Transaction,
    TransactionResult,
)
from blobflows.models.primitives import Address, BlobId, CoinType, Digest, NodeId, ObjectId

OWNER = "0x" + "a" * 64
PACKAGE = "0x" + "b" * 64
EXCHANGE_PACKAGE = "0x" + "c" * 64
SYSTEM_ID = "0x" + "1" * 64
EXCHANGE_ID = "0x" + "2" * 64
GAS_TYPE = "0x2::sui::SUI"
WAL_TYPE = f"{PACKAGE}::wal::WAL"
BLOB_TYPE = f"{PACKAGE}::blob::Blob"
NODE_IDS = ["node-0", "node-1", "node-2", "node-3"]


class FakeEncoder(BlobEncoder):
    """
    Deterministic stand-in for the erasure coder: splits the payload into one chunk per node.
    """

    def __init__(self, node_ids: list[NodeId]):
        self.node_ids = node_ids
        self.calls = 0

    @staticmethod
    def blob_id_for(data: bytes) -> BlobId:
        digest = hashlib.sha256(b"blob:" + data).digest()
        return base64.urlsafe_b64encode(digest).decode().rstrip("=")

    async def encode(self, log: structlog.stdlib.BoundLogger, data: bytes) -> EncodedBlob:
        self.calls += 1
        n = len(self.node_ids)
        chunk_size = max(1, -(-len(data) // n))
        fragments_by_node: dict[NodeId, FragmentSet] = {}
        hashes = []
        for i, node_id in enumerate(self.node_ids):
            chunk = data[i * chunk_size : (i + 1) * chunk_size]
            hashes.append(hashlib.sha256(chunk).hexdigest())
            fragments_by_node[node_id] = [
                Sliver(pair_index=i, kind="primary", data=chunk),
                Sliver(pair_index=i, kind="secondary", data=chunk[::-1]),
            ]
        return EncodedBlob(
            blob_id=self.blob_id_for(data),
            root_hash=hashlib.sha256(data).digest(),
            metadata=BlobMetadata(
                encoding_type="RS2",
                unencoded_length=len(data),
                encoded_length=2 * chunk_size * n,
                hashes=hashes,
            ),
            fragments_by_node=fragments_by_node,
        )


class FakeSigner(Signer):
    def __init__(self, address: Address = OWNER):
        self._address = address
        self.signed: list[Transaction] = []

    @property
    def address(self) -> Address:
        return self._address

    async def sign_and_execute(
        self, log: structlog.stdlib.BoundLogger, transaction: Transaction
    ) -> Digest:
        self.signed.append(transaction)
        return f"digest-{len(self.signed)}"


class InMemoryLedger(LedgerClient):
    """
    Executes the handful of move calls the workflow issues against in-memory balances and objects.

    `fail_functions` makes any transaction calling one of those functions finish with a failure status.
    `omit_blob_object` registers blobs without reporting the created object.
    """

    def __init__(self, swap_amount: int = 500_000_000):
        self.balances: dict[tuple[Address, CoinType], int] = {}
        self.objects: dict[ObjectId, LedgerObject] = {
            SYSTEM_ID: LedgerObject(
                object_id=SYSTEM_ID, type=f"{PACKAGE}::system::System"
            ),
            EXCHANGE_ID: LedgerObject(
                object_id=EXCHANGE_ID,
                type=f"{EXCHANGE_PACKAGE}::wal_exchange::Exchange",
            ),
        }
        self.swap_amount = swap_amount
        self.fail_functions: set[str] = set()
        self.omit_blob_object = False
        self.transactions: list[Transaction] = []
        self.results: dict[Digest, TransactionResult] = {}
        self.balance_errors: list[BaseException] = []
        self._object_ids = itertools.count(1)

    def fund(self, owner: Address, coin_type: CoinType, amount: int) -> None:
        self.balances[(owner, coin_type)] = self.balances.get((owner, coin_type), 0) + amount

    def calls(self, function: str) -> list[MoveCall]:
        return [
            call
            for tx in self.transactions
            for call in tx.move_calls
            if call.function == function
        ]

    async def submit(
        self, log: structlog.stdlib.BoundLogger, transaction: Transaction
    ) -> Digest:
        self.transactions.append(transaction)
        digest = f"digest-{len(self.transactions)}"
        self.results[digest] = self._apply(digest, transaction)
        return digest

    async def wait_for_finality(
        self, log: structlog.stdlib.BoundLogger, digest: Digest
    ) -> TransactionResult:
        return self.results[digest]

    async def get_balance(
        self, log: structlog.stdlib.BoundLogger, owner: Address, coin_type: CoinType
    ) -> int:
        if self.balance_errors:
            raise self.balance_errors.pop(0)
        return self.balances.get((owner, coin_type), 0)

    async def get_object(
        self, log: structlog.stdlib.BoundLogger, object_id: ObjectId
    ) -> LedgerObject | None:
        return self.objects.get(object_id)

    def _apply(self, digest: Digest, tx: Transaction) -> TransactionResult:
        if any(call.function in self.fail_functions for call in tx.move_calls):
            return TransactionResult(
                digest=digest,
                status=ExecutionStatus.FAILURE,
                error="MoveAbort(1)",
            )

        changes: list[ObjectChange] = []
        for call in tx.move_calls:
            if call.function == "exchange_all_for_wal":
                self.fund(tx.sender, GAS_TYPE, -call.arguments[1].balance)
                self.fund(tx.sender, WAL_TYPE, self.swap_amount)
            elif call.function == "register_blob":
                object_id = f"0x{next(self._object_ids):064x}"
                self.objects[object_id] = LedgerObject(
                    object_id=object_id,
                    type=BLOB_TYPE,
                    fields={
                        "blob_id": _pure(call.arguments[2]),
                        "deletable": _pure(call.arguments[6]),
                        "certified_epoch": None,
                    },
                )
                if not self.omit_blob_object:
                    changes.append(
                        ObjectChange(
                            type="created",
                            object_id=object_id,
                            object_type=BLOB_TYPE,
                        )
                    )
            elif call.function == "certify_blob":
                blob_arg = call.arguments[1]
                assert isinstance(blob_arg, ObjectArg)
                self.objects[blob_arg.object_id].fields["certified_epoch"] = 1

        return TransactionResult(
            digest=digest,
            status=ExecutionStatus.SUCCESS,
            object_changes=changes,
        )

    def blob_object(self, object_id: ObjectId) -> LedgerObject:
        return self.objects[object_id]


def _pure(arg: Any) -> Any:
    return arg.value


class ScriptedNodeClient(StorageNodeClient):
    """
    Storage nodes with scripted behaviour: `ok`, `fail`, `hang`, or `flaky` (one transient failure, then ok).
    Nodes not listed in `behaviours` confirm.
    """

    def __init__(self, behaviours: dict[NodeId, str] | None = None):
        self.behaviours = behaviours or {}
        self.calls: list[NodeId] = []
        self.cancelled: list[NodeId] = []

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
        self.calls.append(node_id)
        behaviour = self.behaviours.get(node_id, "ok")
        if behaviour == "fail":
            raise RuntimeError(f"{node_id} is down")
        if behaviour == "hang":
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                self.cancelled.append(node_id)
                raise
        if behaviour == "flaky" and self.calls.count(node_id) == 1:
            raise aiohttp.ClientConnectionError(f"{node_id} reset the connection")
        message = f"{blob_id}:{object_id}".encode()
        return NodeConfirmation(
            node_id=node_id,
            blob_id=blob_id,
            object_id=object_id if deletable else None,
            serialized_message=message,
            signature=hashlib.sha256(node_id.encode() + message).digest(),
        )


class RecordingFaucet(FaucetClient):
    def __init__(self, ledger: InMemoryLedger, amount: int = 10_000_000_000):
        self.ledger = ledger
        self.amount = amount
        self.available = True
        self.requests: list[Address] = []

    async def request_funds(
        self, log: structlog.stdlib.BoundLogger, recipient: Address
    ) -> None:
        self.requests.append(recipient)
        if not self.available:
            raise FaucetUnavailable("faucet is rate limited")
        self.ledger.fund(recipient, GAS_TYPE, self.amount)
