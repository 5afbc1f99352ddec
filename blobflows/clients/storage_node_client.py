import base64

import aiohttp
import structlog

from blobflows.clients.base import StorageNodeClient
from blobflows.models.blob import BlobMetadata, FragmentSet, NodeConfirmation
from blobflows.models.primitives import BlobId, NodeId, ObjectId
from blobflows.utils.request_utils import request_json, request_read


class HttpStorageNodeClient(StorageNodeClient):
    """
    Talks to storage nodes over their HTTP API.

    Metadata goes first, then every sliver, then the node is asked to sign a confirmation.
    Requests are attempted once; re-sending is the distribution step's decision.
    """

    def __init__(self, node_urls: dict[NodeId, str]):
        self.node_urls = {
            node_id: url.rstrip("/") for node_id, url in node_urls.items()
        }
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _blob_url(self, node_id: NodeId, blob_id: BlobId) -> str:
        if node_id not in self.node_urls:
            raise ValueError(f"No URL configured for storage node {node_id}")
        return f"{self.node_urls[node_id]}/v1/blobs/{blob_id}"

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
        log = log.bind(node_id=node_id)
        blob_url = self._blob_url(node_id, blob_id)
        session = self._get_session()
        client_timeout = aiohttp.ClientTimeout(total=timeout)

        await request_read(
            log,
            f"{blob_url}/metadata",
            method="PUT",
            data=metadata.model_dump_json().encode(),
            attempts=1,
            session=session,
            timeout=client_timeout,
            headers={"Content-Type": "application/json"},
        )
        for sliver in fragments:
            await request_read(
                log,
                f"{blob_url}/slivers/{sliver.pair_index}/{sliver.kind}",
                method="PUT",
                data=sliver.data,
                attempts=1,
                session=session,
                timeout=client_timeout,
                headers={"Content-Type": "application/octet-stream"},
            )
        log.debug("Slivers stored", slivers=len(fragments))

        if deletable:
            confirmation_url = f"{blob_url}/confirmation/deletable/{object_id}"
        else:
            confirmation_url = f"{blob_url}/confirmation/permanent"
        response = await request_json(
            log,
            confirmation_url,
            attempts=1,
            session=session,
            timeout=client_timeout,
        )
        return parse_confirmation(node_id, blob_id, object_id, response)


def parse_confirmation(
    node_id: NodeId,
    blob_id: BlobId,
    object_id: ObjectId,
    response: dict,
) -> NodeConfirmation:
    try:
        signed = response["success"]["data"]["signed"]
        serialized_message = base64.b64decode(signed["serializedMessage"])
        signature = base64.b64decode(signed["signature"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(
            f"Malformed confirmation from storage node {node_id}: {response!r}"
        ) from e
    return NodeConfirmation(
        node_id=node_id,
        blob_id=blob_id,
        object_id=object_id,
        serialized_message=serialized_message,
        signature=signature,
    )
