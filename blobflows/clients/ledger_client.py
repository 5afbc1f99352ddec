import itertools
from typing import Any

import aiohttp
import structlog
import tenacity

from blobflows.clients.base import LedgerClient, Signer
from blobflows.errors import LedgerRpcError
from blobflows.models.ledger import (
    ExecutionStatus,
    LedgerObject,
    ObjectChange,
    Transaction,
    TransactionResult,
)
from blobflows.models.primitives import Address, CoinType, Digest, ObjectId
from blobflows.utils.request_utils import request_json
from blobflows.utils.secret_utils import get_secret


class JsonRpcLedgerClient(LedgerClient):
    """
    Ledger client speaking the fullnode JSON-RPC API.
    Submission goes through the injected `Signer`; everything else is a read.
    """

    def __init__(
        self,
        endpoint: str,
        signer: Signer,
        finality_timeout: float = 60,
        finality_poll_interval: float = 0.5,
        api_key: str | None = None,
    ):
        self.endpoint = endpoint
        self.signer = signer
        self.finality_timeout = finality_timeout
        self.finality_poll_interval = finality_poll_interval
        if api_key is None:
            api_key = get_secret("LEDGER_API_KEY")
        self.api_key = api_key

        self._ids = itertools.count(1)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._session = aiohttp.ClientSession(headers=headers)
        return self._session

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _call(
        self,
        log: structlog.stdlib.BoundLogger,
        method: str,
        params: list[Any],
    ) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        response = await request_json(
            log,
            self.endpoint,
            method="POST",
            json=payload,
            session=self._get_session(),
        )
        if "error" in response:
            error = response["error"]
            raise LedgerRpcError(method, error.get("code"), error.get("message", ""))
        return response["result"]

    async def submit(
        self,
        log: structlog.stdlib.BoundLogger,
        transaction: Transaction,
    ) -> Digest:
        if transaction.sender is None:
            transaction.set_sender(self.signer.address)
        return await self.signer.sign_and_execute(log, transaction)

    async def wait_for_finality(
        self,
        log: structlog.stdlib.BoundLogger,
        digest: Digest,
    ) -> TransactionResult:
        # the fullnode answers with an error until it has seen the transaction
        @tenacity.retry(
            retry=tenacity.retry_if_exception_type(LedgerRpcError),
            wait=tenacity.wait_fixed(self.finality_poll_interval),
            stop=tenacity.stop_after_delay(self.finality_timeout),
            reraise=True,
        )
        async def poll():
            return await self._call(
                log,
                "sui_getTransactionBlock",
                [digest, {"showEffects": True, "showObjectChanges": True}],
            )

        result = await poll()
        return parse_transaction_result(digest, result)

    async def get_balance(
        self,
        log: structlog.stdlib.BoundLogger,
        owner: Address,
        coin_type: CoinType,
    ) -> int:
        result = await self._call(log, "suix_getBalance", [owner, coin_type])
        return int(result["totalBalance"])

    async def get_object(
        self,
        log: structlog.stdlib.BoundLogger,
        object_id: ObjectId,
    ) -> LedgerObject | None:
        result = await self._call(
            log,
            "sui_getObject",
            [object_id, {"showType": True, "showContent": True}],
        )
        data = result.get("data")
        if not data:
            log.info("Object not found", object_id=object_id, error=result.get("error"))
            return None
        content = data.get("content") or {}
        return LedgerObject(
            object_id=data["objectId"],
            type=data["type"],
            fields=content.get("fields", {}),
        )


def parse_transaction_result(digest: Digest, result: dict[str, Any]) -> TransactionResult:
    effects = result.get("effects") or {}
    status = effects.get("status") or {}
    object_changes = [
        ObjectChange(
            type=change["type"],
            object_id=change["objectId"],
            object_type=change.get("objectType"),
        )
        for change in result.get("objectChanges") or []
        if "objectId" in change
    ]
    return TransactionResult(
        digest=result.get("digest", digest),
        status=(
            ExecutionStatus.SUCCESS
            if status.get("status") == "success"
            else ExecutionStatus.FAILURE
        ),
        error=status.get("error"),
        object_changes=object_changes,
    )
