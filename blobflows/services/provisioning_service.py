from typing import Optional

import structlog

from blobflows.clients.base import FaucetClient, LedgerClient
from blobflows.errors import FaucetUnavailable, SwapFailed
from blobflows.models.common import StrictModel
from blobflows.models.config import NetworkConfig
from blobflows.models.ledger import Transaction
from blobflows.models.primitives import Address, Digest, parse_struct_tag
from blobflows.utils.async_utils import Timer


class FundingReport(StrictModel):
    gas_balance: int
    payment_balance: int
    faucet_requested: bool = False
    swap_digest: Optional[Digest] = None


class ProvisioningService:
    """
    Makes sure an account can pay for gas and storage before an upload starts.

    Both checks are skipped when the balances are already above their thresholds,
    so calling this repeatedly is harmless.
    """

    def __init__(
        self,
        config: NetworkConfig,
        ledger: LedgerClient,
        faucet: FaucetClient | None = None,
    ):
        self.config = config
        self.ledger = ledger
        self.faucet = faucet

    async def ensure_funds(
        self,
        log: structlog.stdlib.BoundLogger,
        account: Address,
    ) -> FundingReport:
        log = log.bind(account=account)

        with Timer() as timer:
            gas_balance = await self.ledger.get_balance(
                log, account, self.config.gas_token_type
            )
            faucet_requested = False
            if gas_balance < self.config.min_gas_balance:
                log.info(
                    "Gas balance below threshold",
                    balance=gas_balance,
                    threshold=self.config.min_gas_balance,
                )
                await self._request_gas(log, account)
                faucet_requested = True
                gas_balance = await self.ledger.get_balance(
                    log, account, self.config.gas_token_type
                )

            payment_balance = await self.ledger.get_balance(
                log, account, self.config.payment_token_type
            )
            swap_digest = None
            if payment_balance < self.config.min_payment_balance:
                log.info(
                    "Payment balance below threshold",
                    balance=payment_balance,
                    threshold=self.config.min_payment_balance,
                )
                swap_digest = await self._swap_for_payment_token(log, account)

        log.info(
            "Funds ensured",
            gas_balance=gas_balance,
            payment_balance=payment_balance,
            faucet_requested=faucet_requested,
            swapped=swap_digest is not None,
            duration=timer.wall_time,
        )
        return FundingReport(
            gas_balance=gas_balance,
            payment_balance=payment_balance,
            faucet_requested=faucet_requested,
            swap_digest=swap_digest,
        )

    async def _request_gas(
        self,
        log: structlog.stdlib.BoundLogger,
        account: Address,
    ) -> None:
        if self.faucet is None:
            raise FaucetUnavailable(
                f"No faucet configured for network `{self.config.network}`"
            )
        try:
            await self.faucet.request_funds(log, account)
        except FaucetUnavailable:
            raise
        except Exception as e:
            raise FaucetUnavailable(f"Faucet request failed: {e}") from e

    async def _swap_for_payment_token(
        self,
        log: structlog.stdlib.BoundLogger,
        account: Address,
    ) -> Digest:
        if not self.config.exchange_ids:
            raise SwapFailed(
                f"No exchange configured for network `{self.config.network}`"
            )
        exchange_id = self.config.exchange_ids[0]
        exchange = await self.ledger.get_object(log, exchange_id)
        if exchange is None:
            raise SwapFailed(f"Exchange object {exchange_id} not found")
        exchange_package = parse_struct_tag(exchange.type).address

        tx = Transaction()
        tx.set_sender(account)
        payment = tx.move_call(
            package=exchange_package,
            module="wal_exchange",
            function="exchange_all_for_wal",
            arguments=[
                tx.object(exchange_id),
                tx.coin_with_balance(self.config.gas_token_type, self.config.swap_amount),
            ],
        )
        tx.transfer_objects([payment], account)

        result = await self.ledger.execute(log, tx)
        if not result.succeeded:
            log.error(
                "Swap transaction failed",
                digest=result.digest,
                error=result.error,
            )
            raise SwapFailed(
                f"Swap transaction {result.digest} failed: {result.error}", result
            )

        log.info("Swapped gas for payment token", digest=result.digest)
        return result.digest
