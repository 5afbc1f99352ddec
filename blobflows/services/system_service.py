import structlog

from blobflows.clients.base import LedgerClient
from blobflows.errors import BlobObjectNotFound
from blobflows.models.config import NetworkConfig
from blobflows.models.primitives import StructTag, parse_struct_tag


class SystemService:
    """
    Resolves where the storage system lives on the ledger.
    """

    def __init__(self, config: NetworkConfig, ledger: LedgerClient):
        self.config = config
        self.ledger = ledger
        self._blob_type: StructTag | None = None

    async def get_blob_type(self, log: structlog.stdlib.BoundLogger) -> StructTag:
        """
        The struct tag of blob objects, e.g. `0xabc::blob::Blob`.
        Read from the config, or derived from the package of the storage system object.
        """
        if self.config.blob_object_type is not None:
            return self.config.blob_object_type
        if self._blob_type is not None:
            return self._blob_type

        system = await self.ledger.get_object(log, self.config.system_object_id)
        if system is None:
            raise BlobObjectNotFound(
                f"Storage system object {self.config.system_object_id} not found"
            )
        package = parse_struct_tag(system.type).address
        self._blob_type = f"{package}::blob::Blob"
        log.debug("Resolved blob object type", blob_type=self._blob_type)
        return self._blob_type

    async def get_package(self, log: structlog.stdlib.BoundLogger) -> str:
        return parse_struct_tag(await self.get_blob_type(log)).address
