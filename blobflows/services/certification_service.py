import structlog

from blobflows.clients.base import LedgerClient
from blobflows.errors import (
    CertificationExecutionFailed,
    ConfirmationsRejected,
    QuorumNotReached,
)
from blobflows.models.blob import ConfirmationSet
from blobflows.models.config import NetworkConfig
from blobflows.models.ledger import Transaction, TransactionResult
from blobflows.models.primitives import Address, BlobId, ObjectId
from blobflows.services.system_service import SystemService
from blobflows.utils.async_utils import Timer


class CertificationService:
    def __init__(
        self,
        config: NetworkConfig,
        ledger: LedgerClient,
        system: SystemService,
    ):
        self.config = config
        self.ledger = ledger
        self.system = system

    def check_confirmations(
        self,
        blob_id: BlobId,
        object_id: ObjectId,
        confirmations: ConfirmationSet,
        deletable: bool,
    ) -> None:
        if confirmations.blob_id != blob_id:
            raise ConfirmationsRejected(
                f"Confirmations are for blob {confirmations.blob_id}, not {blob_id}"
            )
        required = self.config.quorum_for(confirmations.total_nodes)
        if len(confirmations) < required:
            raise QuorumNotReached(confirmations, required, failures={})
        if deletable:
            # confirmations for deletable blobs are bound to one blob object
            for node_id, confirmation in confirmations.confirmations.items():
                if confirmation.object_id not in (None, object_id):
                    raise ConfirmationsRejected(
                        f"Confirmation from {node_id} is for object {confirmation.object_id}, not {object_id}"
                    )

    async def build_certify_transaction(
        self,
        log: structlog.stdlib.BoundLogger,
        object_id: ObjectId,
        confirmations: ConfirmationSet,
        sender: Address | None = None,
    ) -> Transaction:
        package = await self.system.get_package(log)
        node_ids = sorted(confirmations.confirmations)

        tx = Transaction()
        if sender is not None:
            tx.set_sender(sender)
        tx.move_call(
            package=package,
            module="system",
            function="certify_blob",
            arguments=[
                tx.object(self.config.system_object_id),
                tx.object(object_id),
                tx.pure(
                    [
                        {
                            "node_id": node_id,
                            "message": confirmations.confirmations[node_id].serialized_message.hex(),
                            "signature": confirmations.confirmations[node_id].signature.hex(),
                        }
                        for node_id in node_ids
                    ]
                ),
            ],
        )
        return tx

    async def certify(
        self,
        log: structlog.stdlib.BoundLogger,
        blob_id: BlobId,
        object_id: ObjectId,
        confirmations: ConfirmationSet,
        deletable: bool,
        sender: Address | None = None,
    ) -> TransactionResult:
        log = log.bind(blob_id=blob_id, object_id=object_id)
        self.check_confirmations(blob_id, object_id, confirmations, deletable)

        with Timer() as timer:
            tx = await self.build_certify_transaction(
                log, object_id, confirmations, sender=sender
            )
            result = await self.ledger.execute(log, tx)

        if not result.succeeded:
            log.error(
                "Certification transaction failed",
                digest=result.digest,
                error=result.error,
            )
            raise CertificationExecutionFailed(
                f"Certification transaction {result.digest} failed: {result.error}",
                result,
            )

        log.info(
            "Blob certified",
            digest=result.digest,
            confirmations=len(confirmations),
            duration=timer.wall_time,
        )
        return result
