import asyncio
import logging

import structlog
import tenacity

from blobflows.clients.base import StorageNodeClient
from blobflows.errors import NodeTimeout, QuorumNotReached
from blobflows.models.blob import (
    BlobMetadata,
    ConfirmationSet,
    FragmentSet,
    NodeConfirmation,
)
from blobflows.models.config import NetworkConfig
from blobflows.models.primitives import BlobId, NodeId, ObjectId
from blobflows.utils.async_utils import Timer
from blobflows.utils.request_utils import is_transient


def _should_resend(exc: BaseException) -> bool:
    return isinstance(exc, NodeTimeout) or is_transient(exc)


class DistributionService:
    """
    Pushes slivers to every storage node in parallel and collects their confirmations.

    Individual nodes may fail or time out; the step only fails when the surviving confirmations
    fall short of the quorum. Nothing outlives `distribution_deadline`.
    """

    def __init__(self, config: NetworkConfig, node_client: StorageNodeClient):
        self.config = config
        self.node_client = node_client

    async def distribute(
        self,
        log: structlog.stdlib.BoundLogger,
        blob_id: BlobId,
        metadata: BlobMetadata,
        fragments_by_node: dict[NodeId, FragmentSet],
        object_id: ObjectId,
        deletable: bool = True,
    ) -> ConfirmationSet:
        log = log.bind(blob_id=blob_id, object_id=object_id)
        required = self.config.quorum_for(len(fragments_by_node))
        confirmations = ConfirmationSet(
            blob_id=blob_id,
            total_nodes=len(fragments_by_node),
        )
        failures: dict[NodeId, BaseException] = {}

        log.info(
            "Distributing slivers",
            nodes=len(fragments_by_node),
            required=required,
        )

        timer = Timer()
        timer.start()
        tasks: dict[asyncio.Task, NodeId] = {
            asyncio.create_task(
                self._store_on_node(
                    log,
                    node_id,
                    blob_id,
                    fragments,
                    metadata,
                    object_id,
                    deletable,
                )
            ): node_id
            for node_id, fragments in fragments_by_node.items()
        }
        deadline_exceeded = False
        try:
            if tasks:
                _, pending = await asyncio.wait(
                    tasks, timeout=self.config.distribution_deadline
                )
                deadline_exceeded = bool(pending)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            timer.end()

        for task, node_id in tasks.items():
            if task.cancelled():
                failures[node_id] = NodeTimeout(
                    node_id, self.config.distribution_deadline
                )
                continue
            exc = task.exception()
            if exc is not None:
                failures[node_id] = exc
                continue
            confirmation = task.result()
            if confirmation.node_id != node_id:
                failures[node_id] = ValueError(
                    f"Storage node {node_id} answered for {confirmation.node_id}"
                )
                continue
            try:
                confirmations.add(confirmation)
            except ValueError as e:
                failures[node_id] = e

        for node_id, exc in failures.items():
            log.warning(
                "Storage node failed",
                node_id=node_id,
                error=repr(exc),
            )
        log.info(
            "Distribution finished",
            confirmations=len(confirmations),
            failures=len(failures),
            required=required,
            deadline_exceeded=deadline_exceeded,
            duration=timer.wall_time,
        )

        if len(confirmations) < required:
            raise QuorumNotReached(
                confirmations,
                required,
                failures,
                deadline_exceeded=deadline_exceeded,
            )
        return confirmations

    async def _store_on_node(
        self,
        log: structlog.stdlib.BoundLogger,
        node_id: NodeId,
        blob_id: BlobId,
        fragments: FragmentSet,
        metadata: BlobMetadata,
        object_id: ObjectId,
        deletable: bool,
    ) -> NodeConfirmation:
        log = log.bind(node_id=node_id)
        timeout = self.config.per_node_timeout

        @tenacity.retry(
            retry=tenacity.retry_if_exception(_should_resend),
            wait=tenacity.wait_random_exponential(multiplier=0.5, max=5),
            stop=tenacity.stop_after_attempt(self.config.node_retry_attempts),
            before_sleep=tenacity.before_sleep_log(
                log,  # type: ignore
                logging.WARNING,
                exc_info=True,
            ),
            reraise=True,
        )
        async def attempt() -> NodeConfirmation:
            try:
                return await asyncio.wait_for(
                    self.node_client.store(
                        log,
                        node_id,
                        blob_id,
                        fragments,
                        metadata,
                        object_id,
                        deletable,
                        timeout=timeout,
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as e:
                raise NodeTimeout(node_id, timeout) from e

        confirmation = await attempt()
        log.debug("Storage node confirmed")
        return confirmation
