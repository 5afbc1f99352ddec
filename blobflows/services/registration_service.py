import structlog

from blobflows.clients.base import LedgerClient
from blobflows.errors import BlobObjectNotFound, RegistrationExecutionFailed
from blobflows.models.blob import BlobObjectRecord, BlobObjectStatus, EncodedBlob
from blobflows.models.config import NetworkConfig
from blobflows.models.ledger import Transaction
from blobflows.models.primitives import (
    Address,
    Epochs,
    ObjectId,
    same_struct_type,
)
from blobflows.services.system_service import SystemService
from blobflows.utils.async_utils import Timer


class RegistrationService:
    def __init__(
        self,
        config: NetworkConfig,
        ledger: LedgerClient,
        system: SystemService,
    ):
        self.config = config
        self.ledger = ledger
        self.system = system

    async def build_register_transaction(
        self,
        log: structlog.stdlib.BoundLogger,
        encoded: EncodedBlob,
        owner: Address,
        epochs: Epochs,
        deletable: bool,
        sender: Address | None = None,
    ) -> Transaction:
        """
        Reserve storage, register the blob and hand the blob object to `owner`.
        `sender` pays for all of it and defaults to `owner`.
        """
        blob = encoded.to_blob(owner, epochs, deletable)
        package = await self.system.get_package(log)
        system = Transaction.object(self.config.system_object_id)
        payment_type = self.config.payment_token_type

        tx = Transaction()
        tx.set_sender(sender if sender is not None else blob.owner)
        storage = tx.move_call(
            package=package,
            module="system",
            function="reserve_space",
            arguments=[
                system,
                tx.pure(encoded.metadata.encoded_length),
                tx.pure(blob.epochs),
                tx.coin_with_balance(payment_type),
            ],
        )
        blob_object = tx.move_call(
            package=package,
            module="system",
            function="register_blob",
            arguments=[
                system,
                storage,
                tx.pure(blob.blob_id),
                tx.pure(blob.root_hash.hex()),
                tx.pure(blob.size),
                tx.pure(encoded.metadata.encoding_type),
                tx.pure(blob.deletable),
                tx.coin_with_balance(payment_type),
            ],
        )
        tx.transfer_objects([blob_object], blob.owner)
        return tx

    async def register(
        self,
        log: structlog.stdlib.BoundLogger,
        encoded: EncodedBlob,
        owner: Address,
        epochs: Epochs,
        deletable: bool,
        sender: Address | None = None,
    ) -> BlobObjectRecord:
        log = log.bind(blob_id=encoded.blob_id)

        with Timer() as timer:
            tx = await self.build_register_transaction(
                log, encoded, owner, epochs, deletable, sender=sender
            )
            result = await self.ledger.execute(log, tx)

        if not result.succeeded:
            log.error(
                "Registration transaction failed",
                digest=result.digest,
                error=result.error,
            )
            raise RegistrationExecutionFailed(
                f"Registration transaction {result.digest} failed: {result.error}",
                result,
            )

        blob_type = await self.system.get_blob_type(log)
        created = result.created_objects(blob_type)
        if not created:
            log.error(
                "Blob object not found in transaction effects",
                digest=result.digest,
                blob_type=blob_type,
                object_changes=[c.model_dump() for c in result.object_changes],
            )
            raise BlobObjectNotFound(
                f"Transaction {result.digest} created no object of type {blob_type}"
            )

        record = BlobObjectRecord(
            object_id=created[0].object_id,
            blob_id=encoded.blob_id,
            owner=owner,
            status=BlobObjectStatus.REGISTERED,
            deletable=deletable,
            epochs=epochs,
        )
        log.info(
            "Blob registered",
            object_id=record.object_id,
            digest=result.digest,
            duration=timer.wall_time,
        )
        return record

    async def load_registered(
        self,
        log: structlog.stdlib.BoundLogger,
        object_id: ObjectId,
        encoded: EncodedBlob,
        owner: Address,
    ) -> BlobObjectRecord:
        """
        Look up a blob object registered by an earlier, unfinished upload of the same bytes.
        """
        obj = await self.ledger.get_object(log, object_id)
        if obj is None:
            raise BlobObjectNotFound(f"Blob object {object_id} not found")

        blob_type = await self.system.get_blob_type(log)
        if not same_struct_type(obj.type, blob_type):
            raise BlobObjectNotFound(
                f"Object {object_id} has type {obj.type}, expected {blob_type}"
            )
        if str(obj.fields.get("blob_id")) != encoded.blob_id:
            raise BlobObjectNotFound(
                f"Blob object {object_id} belongs to blob {obj.fields.get('blob_id')}, "
                f"not {encoded.blob_id}"
            )

        certified = obj.fields.get("certified_epoch") is not None
        record = BlobObjectRecord(
            object_id=object_id,
            blob_id=encoded.blob_id,
            owner=owner,
            status=(
                BlobObjectStatus.CERTIFIED if certified else BlobObjectStatus.REGISTERED
            ),
            deletable=bool(obj.fields.get("deletable", True)),
        )
        log.info(
            "Loaded registered blob object",
            object_id=object_id,
            status=record.status.value,
        )
        return record
