import logging
from unittest.mock import patch

import pytest
import tenacity
from aioresponses import aioresponses

from blobflows.blobflows import BlobFlows
from blobflows.log_config import configure_logging, get_logger
from blobflows.models.config import NetworkConfig
from blobflows.services.certification_service import CertificationService
from blobflows.services.distribution_service import DistributionService
from blobflows.services.provisioning_service import ProvisioningService
from blobflows.services.registration_service import RegistrationService
from blobflows.services.system_service import SystemService
from blobflows.services.upload_service import UploadService
from blobflows.tests.resources.fakes import (
    EXCHANGE_ID,
    GAS_TYPE,
    NODE_IDS,
    OWNER,
    SYSTEM_ID,
    WAL_TYPE,
    FakeEncoder,
    FakeSigner,
    InMemoryLedger,
    RecordingFaucet,
    ScriptedNodeClient,
)

_log_history = []


def capture_processor(logger, method_name, event_dict):
    dict_copy = event_dict.copy()
    dict_copy["log_level"] = method_name
    _log_history.append(dict_copy)
    return event_dict


@pytest.fixture(scope="session", autouse=True)
def configure_logs():
    configure_logging(
        pretty=True, level=logging.DEBUG, additional_processors=[capture_processor]
    )


@pytest.fixture(scope="function")
def log_history():
    _log_history.clear()
    yield _log_history
    _log_history.clear()


@pytest.fixture(scope="function")
def log(log_history):
    return get_logger()


@pytest.fixture
def config() -> NetworkConfig:
    return NetworkConfig(
        network="localnet",
        endpoint="http://ledger.test",
        faucet_url="http://faucet.test",
        payment_token_type=WAL_TYPE,
        exchange_ids=[EXCHANGE_ID],
        system_object_id=SYSTEM_ID,
        per_node_timeout=0.2,
        distribution_deadline=1,
        finality_timeout=1,
        finality_poll_interval=0.01,
        storage_nodes={node_id: f"http://{node_id}.test" for node_id in NODE_IDS},
    )


@pytest.fixture
def ledger(config) -> InMemoryLedger:
    return InMemoryLedger(swap_amount=config.swap_amount)


@pytest.fixture
def funded_ledger(ledger, config) -> InMemoryLedger:
    ledger.fund(OWNER, GAS_TYPE, 10 * config.min_gas_balance)
    ledger.fund(OWNER, WAL_TYPE, 10 * config.min_payment_balance)
    return ledger


@pytest.fixture
def encoder() -> FakeEncoder:
    return FakeEncoder(NODE_IDS)


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def node_client() -> ScriptedNodeClient:
    return ScriptedNodeClient()


@pytest.fixture
def faucet(ledger) -> RecordingFaucet:
    return RecordingFaucet(ledger)


@pytest.fixture
def system_service(config, ledger) -> SystemService:
    return SystemService(config, ledger)


@pytest.fixture
def provisioning_service(config, ledger, faucet) -> ProvisioningService:
    return ProvisioningService(config, ledger, faucet)


@pytest.fixture
def registration_service(config, ledger, system_service) -> RegistrationService:
    return RegistrationService(config, ledger, system_service)


@pytest.fixture
def distribution_service(config, node_client) -> DistributionService:
    return DistributionService(config, node_client)


@pytest.fixture
def certification_service(config, ledger, system_service) -> CertificationService:
    return CertificationService(config, ledger, system_service)


@pytest.fixture
def upload_service(
    provisioning_service,
    encoder,
    registration_service,
    distribution_service,
    certification_service,
) -> UploadService:
    return UploadService(
        provisioning=provisioning_service,
        encoder=encoder,
        registration=registration_service,
        distribution=distribution_service,
        certification=certification_service,
    )


@pytest.fixture
async def blobflows(config, encoder, signer, funded_ledger, node_client, faucet):
    flows = BlobFlows(
        config=config,
        encoder=encoder,
        signer=signer,
        ledger=funded_ledger,
        node_client=node_client,
        faucet=faucet,
    )
    yield flows
    await flows.close()


@pytest.fixture
def mock_aioresponse():
    with aioresponses() as m:
        yield m


@pytest.fixture
def mock_tenacity():
    original_retry = tenacity.retry

    def mock_tenacity(wait, **kwargs):
        return original_retry(
            wait=tenacity.wait_fixed(0),
            **kwargs,
        )

    with patch("tenacity.retry", mock_tenacity):
        yield
