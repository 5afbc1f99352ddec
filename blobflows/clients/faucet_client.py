import asyncio

import aiohttp
import structlog

from blobflows.clients.base import FaucetClient
from blobflows.errors import FaucetUnavailable
from blobflows.models.primitives import Address
from blobflows.utils.request_utils import request_json


class HttpFaucetClient(FaucetClient):
    """
    Test-network faucet speaking the v2 gas request protocol.
    """

    def __init__(self, host: str, attempts: int = 3):
        self.host = host.rstrip("/")
        self.attempts = attempts

    async def request_funds(
        self,
        log: structlog.stdlib.BoundLogger,
        recipient: Address,
    ) -> None:
        url = f"{self.host}/v2/gas"
        try:
            response = await request_json(
                log,
                url,
                method="POST",
                json={"FixedAmountRequest": {"recipient": recipient}},
                attempts=self.attempts,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FaucetUnavailable(f"Faucet at {self.host} is unreachable: {e}") from e

        status = response.get("status") if isinstance(response, dict) else None
        if status != "Success":
            log.warning("Faucet request rejected", url=url, response=response)
            raise FaucetUnavailable(f"Faucet at {self.host} rejected the request: {status}")

        log.info("Faucet request acknowledged", recipient=recipient)
