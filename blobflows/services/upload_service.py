import asyncio
import logging
import uuid
from typing import AsyncIterator, Callable, Optional

import sentry_sdk
import structlog
import tenacity

from blobflows.clients.base import BlobEncoder
from blobflows.errors import (
    BlobObjectNotFound,
    EncodingError,
    InvalidTransitionError,
    UploadError,
)
from blobflows.models.blob import (
    BlobObjectRecord,
    BlobObjectStatus,
    ConfirmationSet,
    EncodedBlob,
)
from blobflows.models.primitives import Address, BlobId, Epochs, ObjectId
from blobflows.models.workflow import Phase, StatusUpdate, WorkflowState, can_transition
from blobflows.services.certification_service import CertificationService
from blobflows.services.distribution_service import DistributionService
from blobflows.services.provisioning_service import FundingReport, ProvisioningService
from blobflows.services.registration_service import RegistrationService
from blobflows.utils.request_utils import is_transient

StatusListener = Callable[[StatusUpdate], None]

PHASE_MESSAGES = {
    Phase.PROVISIONING: "Getting storage tokens...",
    Phase.ENCODING: "Encoding blob...",
    Phase.REGISTERING: "Registering blob...",
    Phase.DISTRIBUTING: "Writing blob to storage nodes...",
    Phase.CERTIFYING: "Certifying blob...",
    Phase.SUCCEEDED: "Blob uploaded",
    Phase.FAILED: "Upload failed",
}


class UploadService:
    """
    Drives one upload through provisioning, encoding, registration, distribution and certification.

    Phases run strictly one after the other. A failure in any phase moves the workflow to `failed`
    and surfaces as an `UploadError` carrying the phase and the original error; nothing is retried
    or rolled back here. Every phase transition is reported to the status listener.
    """

    def __init__(
        self,
        provisioning: ProvisioningService,
        encoder: BlobEncoder,
        registration: RegistrationService,
        distribution: DistributionService,
        certification: CertificationService,
    ):
        self.provisioning = provisioning
        self.encoder = encoder
        self.registration = registration
        self.distribution = distribution
        self.certification = certification

    async def upload(
        self,
        log: structlog.stdlib.BoundLogger,
        data: bytes,
        owner: Address,
        epochs: Epochs,
        deletable: bool,
        on_status: Optional[StatusListener] = None,
        resume_object_id: Optional[ObjectId] = None,
        sender: Optional[Address] = None,
    ) -> BlobObjectRecord:
        """
        Upload `data` and return its certified blob object.

        Parameters
        ----------
        resume_object_id : None | ObjectId
            a blob object registered by an earlier attempt for the same bytes;
            registration is skipped and the existing object is distributed and certified
        sender : None | Address
            the account that is funded and pays for every transaction (defaults to `owner`);
            `owner` only receives the blob object
        """
        account = sender if sender is not None else owner
        log = log.bind(upload_id=uuid.uuid4().hex, owner=owner, account=account)
        state = WorkflowState()
        confirmations: ConfirmationSet | None = None

        def transition(target: Phase, error: Optional[BaseException] = None) -> None:
            self._transition(log, state, target, on_status, error)

        try:
            transition(Phase.PROVISIONING)
            await self._ensure_funds(log, account)

            transition(Phase.ENCODING)
            encoded = await self._encode(log, data)
            state.blob_id = encoded.blob_id
            log = log.bind(blob_id=encoded.blob_id)

            transition(Phase.REGISTERING)
            if resume_object_id is None:
                record = await self.registration.register(
                    log, encoded, owner, epochs, deletable, sender=account
                )
            else:
                record = await self.registration.load_registered(
                    log, resume_object_id, encoded, owner
                )
            state.blob_object = record
            log = log.bind(object_id=record.object_id)
            if record.blob_id != encoded.blob_id:
                raise BlobObjectNotFound(
                    f"Registered blob {record.blob_id} does not match encoded blob {encoded.blob_id}"
                )

            transition(Phase.DISTRIBUTING)
            if record.status == BlobObjectStatus.CERTIFIED:
                log.info("Blob object already certified, skipping distribution")
            else:
                confirmations = await self.distribution.distribute(
                    log,
                    encoded.blob_id,
                    encoded.metadata,
                    encoded.fragments_by_node,
                    record.object_id,
                    deletable=record.deletable,
                )

            transition(Phase.CERTIFYING)
            if confirmations is not None:
                await self.certification.certify(
                    log,
                    encoded.blob_id,
                    record.object_id,
                    confirmations,
                    deletable=record.deletable,
                    sender=account,
                )
                state.blob_object = record.certified()

            transition(Phase.SUCCEEDED)
        except Exception as e:
            raise self._fail(log, state, e, on_status, confirmations) from e

        return state.blob_object

    async def resume_certification(
        self,
        log: structlog.stdlib.BoundLogger,
        blob_id: BlobId,
        object_id: ObjectId,
        confirmations: ConfirmationSet,
        owner: Address,
        deletable: bool,
        on_status: Optional[StatusListener] = None,
        sender: Optional[Address] = None,
    ) -> BlobObjectRecord:
        """
        Certify a registered blob whose confirmations were already collected by a failed upload.
        """
        account = sender if sender is not None else owner
        log = log.bind(
            upload_id=uuid.uuid4().hex,
            owner=owner,
            account=account,
            blob_id=blob_id,
            object_id=object_id,
        )
        state = WorkflowState(
            blob_id=blob_id,
            blob_object=BlobObjectRecord(
                object_id=object_id,
                blob_id=blob_id,
                owner=owner,
                deletable=deletable,
            ),
        )

        try:
            self._transition(log, state, Phase.CERTIFYING, on_status)
            await self.certification.certify(
                log,
                blob_id,
                object_id,
                confirmations,
                deletable=deletable,
                sender=account,
            )
            state.blob_object = state.blob_object.certified()
            self._transition(log, state, Phase.SUCCEEDED, on_status)
        except Exception as e:
            raise self._fail(log, state, e, on_status, confirmations) from e

        return state.blob_object

    async def stream(
        self,
        log: structlog.stdlib.BoundLogger,
        data: bytes,
        owner: Address,
        epochs: Epochs,
        deletable: bool,
        resume_object_id: Optional[ObjectId] = None,
        sender: Optional[Address] = None,
    ) -> AsyncIterator[StatusUpdate]:
        """
        Run an upload, yielding a status update per phase transition.
        Raises `UploadError` after yielding the `failed` update.
        """
        queue: asyncio.Queue[StatusUpdate | None] = asyncio.Queue()
        task = asyncio.create_task(
            self.upload(
                log,
                data,
                owner,
                epochs,
                deletable,
                on_status=queue.put_nowait,
                resume_object_id=resume_object_id,
                sender=sender,
            )
        )
        task.add_done_callback(lambda _: queue.put_nowait(None))

        try:
            while True:
                update = await queue.get()
                if update is None:
                    break
                yield update
            await task
        finally:
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _ensure_funds(
        self,
        log: structlog.stdlib.BoundLogger,
        account: Address,
    ) -> FundingReport:
        # provisioning gets exactly one more chance on transient network errors
        @tenacity.retry(
            retry=tenacity.retry_if_exception(is_transient),
            wait=tenacity.wait_random_exponential(multiplier=1, max=5),
            stop=tenacity.stop_after_attempt(2),
            before_sleep=tenacity.before_sleep_log(
                log,  # type: ignore
                logging.WARNING,
                exc_info=True,
            ),
            reraise=True,
        )
        async def ensure_funds():
            return await self.provisioning.ensure_funds(log, account)

        return await ensure_funds()

    async def _encode(
        self,
        log: structlog.stdlib.BoundLogger,
        data: bytes,
    ) -> EncodedBlob:
        try:
            encoded = await self.encoder.encode(log, data)
        except Exception as e:
            raise EncodingError(f"Encoder failed: {e}") from e
        if not encoded.fragments_by_node:
            raise EncodingError("Encoder produced no slivers")
        if encoded.size != len(data):
            raise EncodingError(
                f"Encoder reported {encoded.size} bytes, payload has {len(data)}"
            )
        log.info(
            "Blob encoded",
            blob_id=encoded.blob_id,
            size=encoded.size,
            nodes=len(encoded.fragments_by_node),
        )
        return encoded

    def _transition(
        self,
        log: structlog.stdlib.BoundLogger,
        state: WorkflowState,
        target: Phase,
        on_status: Optional[StatusListener],
        error: Optional[BaseException] = None,
    ) -> None:
        if not can_transition(state.phase, target):
            raise InvalidTransitionError(state.phase, target)

        previous = state.phase
        state.phase = target
        update = StatusUpdate(
            phase=target,
            previous_phase=previous,
            message=PHASE_MESSAGES[target],
            blob_id=state.blob_id,
            object_id=(
                state.blob_object.object_id if state.blob_object is not None else None
            ),
            error=str(error) if error is not None else None,
        )
        log.info(
            "Phase transition",
            phase=target.value,
            previous_phase=previous.value,
        )
        if on_status is None:
            return
        try:
            on_status(update)
        except Exception:
            # status reporting is advisory, a broken listener must not fail the upload
            log.exception("Status listener raised", phase=target.value)

    def _fail(
        self,
        log: structlog.stdlib.BoundLogger,
        state: WorkflowState,
        error: Exception,
        on_status: Optional[StatusListener],
        confirmations: Optional[ConfirmationSet],
    ) -> UploadError:
        failed_phase = state.phase
        state.last_error = error
        state.failed_phase = failed_phase
        if not failed_phase.is_terminal:
            self._transition(log, state, Phase.FAILED, on_status, error=error)

        log.error(
            "Upload failed",
            phase=failed_phase.value,
            error=repr(error),
        )
        sentry_sdk.capture_exception(error)

        object_id = state.blob_object.object_id if state.blob_object else None
        return UploadError(
            failed_phase,
            error,
            blob_id=state.blob_id,
            object_id=object_id,
            confirmations=confirmations,
        )
