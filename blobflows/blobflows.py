from pathlib import Path
from typing import AsyncIterator, Optional

from blobflows.clients.base import (
    BlobEncoder,
    FaucetClient,
    LedgerClient,
    Signer,
    StorageNodeClient,
)
from blobflows.clients.faucet_client import HttpFaucetClient
from blobflows.clients.ledger_client import JsonRpcLedgerClient
from blobflows.clients.storage_node_client import HttpStorageNodeClient
from blobflows.log_config import get_logger
from blobflows.models.blob import BlobObjectRecord, ConfirmationSet
from blobflows.models.config import NetworkConfig, UploadOptions
from blobflows.models.primitives import Address, BlobId, ObjectId
from blobflows.models.workflow import StatusUpdate
from blobflows.services.certification_service import CertificationService
from blobflows.services.distribution_service import DistributionService
from blobflows.services.provisioning_service import ProvisioningService
from blobflows.services.registration_service import RegistrationService
from blobflows.services.system_service import SystemService
from blobflows.services.upload_service import StatusListener, UploadService
from blobflows.utils.config_utils import load_config_file, load_config_text


class BlobFlows:
    """
    Entry point for publishing blobs.

    Collaborators not passed in are built from the config: a JSON-RPC ledger client submitting through
    `signer`, an HTTP storage-node client for `config.storage_nodes`, and an HTTP faucet when
    `config.faucet_url` is set. The encoder is always supplied by the caller.
    """

    def __init__(
        self,
        config: NetworkConfig,
        encoder: BlobEncoder,
        signer: Optional[Signer] = None,
        ledger: Optional[LedgerClient] = None,
        node_client: Optional[StorageNodeClient] = None,
        faucet: Optional[FaucetClient] = None,
        options: Optional[UploadOptions] = None,
    ):
        self.log = get_logger()
        self.config = config
        self.signer = signer
        self.options = options or UploadOptions()

        if ledger is None:
            if signer is None:
                raise ValueError("A signer is required to build the default ledger client")
            ledger = JsonRpcLedgerClient(
                endpoint=config.endpoint,
                signer=signer,
                finality_timeout=config.finality_timeout,
                finality_poll_interval=config.finality_poll_interval,
            )
        if node_client is None:
            node_client = HttpStorageNodeClient(config.storage_nodes)
        if faucet is None and config.faucet_url is not None:
            faucet = HttpFaucetClient(config.faucet_url)

        self.ledger = ledger
        self.node_client = node_client
        self.faucet = faucet

        system = SystemService(config, ledger)
        self.upload_service = UploadService(
            provisioning=ProvisioningService(config, ledger, faucet),
            encoder=encoder,
            registration=RegistrationService(config, ledger, system),
            distribution=DistributionService(config, node_client),
            certification=CertificationService(config, ledger, system),
        )

    async def close(self):
        await self.ledger.close()
        await self.node_client.close()
        if self.faucet is not None:
            await self.faucet.close()

    async def __aenter__(self) -> "BlobFlows":
        return self

    async def __aexit__(self, *args):
        await self.close()

    @classmethod
    def from_text(
        cls,
        text: str,
        encoder: BlobEncoder,
        signer: Optional[Signer] = None,
        **kwargs,
    ) -> "BlobFlows":
        config = load_config_text(text)
        return BlobFlows(config=config, encoder=encoder, signer=signer, **kwargs)

    @classmethod
    def from_file(
        cls,
        file: str | Path,
        encoder: BlobEncoder,
        signer: Optional[Signer] = None,
        **kwargs,
    ) -> "BlobFlows":
        if isinstance(file, Path):
            file = file.as_posix()
        config = load_config_file(file)
        return BlobFlows(config=config, encoder=encoder, signer=signer, **kwargs)

    def _owner(self, owner: Optional[Address]) -> Address:
        if owner is not None:
            return owner
        if self.signer is None:
            raise ValueError("`owner` is required when no signer is configured")
        return self.signer.address

    def _sender(self, owner: Address) -> Address:
        # the signer pays, whoever ends up owning the blob
        if self.signer is None:
            return owner
        return self.signer.address

    async def upload(
        self,
        data: bytes,
        owner: Optional[Address] = None,
        epochs: Optional[int] = None,
        deletable: Optional[bool] = None,
        on_status: Optional[StatusListener] = None,
    ) -> BlobId:
        """
        Publish `data` and return its blob id once the blob is certified.

        Parameters
        ----------
        owner : None | Address
            the blob object's owner (defaults to the signer's address);
            funding and transactions always use the signer's account
        epochs : None | int
            how many epochs the blob should be stored for (defaults to `options.epochs`)
        deletable : None | bool
            whether the owner may delete the blob before it expires (defaults to `options.deletable`)
        on_status : None | Callable[[StatusUpdate], None]
            called on every phase transition
        """
        record = await self.upload_blob(data, owner, epochs, deletable, on_status)
        return record.blob_id

    async def upload_blob(
        self,
        data: bytes,
        owner: Optional[Address] = None,
        epochs: Optional[int] = None,
        deletable: Optional[bool] = None,
        on_status: Optional[StatusListener] = None,
    ) -> BlobObjectRecord:
        owner = self._owner(owner)
        return await self.upload_service.upload(
            self.log,
            data,
            owner=owner,
            epochs=epochs if epochs is not None else self.options.epochs,
            deletable=deletable if deletable is not None else self.options.deletable,
            on_status=on_status,
            sender=self._sender(owner),
        )

    async def stream(
        self,
        data: bytes,
        owner: Optional[Address] = None,
        epochs: Optional[int] = None,
        deletable: Optional[bool] = None,
    ) -> AsyncIterator[StatusUpdate]:
        owner = self._owner(owner)
        async for update in self.upload_service.stream(
            self.log,
            data,
            owner=owner,
            epochs=epochs if epochs is not None else self.options.epochs,
            deletable=deletable if deletable is not None else self.options.deletable,
            sender=self._sender(owner),
        ):
            yield update

    async def resume_upload(
        self,
        data: bytes,
        object_id: ObjectId,
        owner: Optional[Address] = None,
        on_status: Optional[StatusListener] = None,
    ) -> BlobId:
        """
        Finish an upload whose blob object was registered but never certified.
        """
        owner = self._owner(owner)
        record = await self.upload_service.upload(
            self.log,
            data,
            owner=owner,
            epochs=self.options.epochs,
            deletable=self.options.deletable,
            on_status=on_status,
            resume_object_id=object_id,
            sender=self._sender(owner),
        )
        return record.blob_id

    async def resume_certification(
        self,
        blob_id: BlobId,
        object_id: ObjectId,
        confirmations: ConfirmationSet,
        owner: Optional[Address] = None,
        deletable: Optional[bool] = None,
        on_status: Optional[StatusListener] = None,
    ) -> BlobId:
        """
        Certify a blob whose confirmations were collected by an upload that failed while certifying.
        """
        owner = self._owner(owner)
        record = await self.upload_service.resume_certification(
            self.log,
            blob_id,
            object_id,
            confirmations,
            owner=owner,
            deletable=deletable if deletable is not None else self.options.deletable,
            on_status=on_status,
            sender=self._sender(owner),
        )
        return record.blob_id
