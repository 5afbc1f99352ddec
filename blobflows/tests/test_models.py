import pytest
from pydantic import ValidationError

from blobflows.models.blob import ConfirmationSet, NodeConfirmation
from blobflows.models.config import NetworkConfig
from blobflows.models.ledger import (
    ExecutionStatus,
    MoveCall,
    ObjectChange,
    ResultArg,
    Transaction,
    TransactionResult,
    TransferObjects,
)
from blobflows.models.primitives import (
    normalize_address,
    parse_struct_tag,
    same_struct_type,
)
from blobflows.models.workflow import Phase, can_transition
from blobflows.utils.config_utils import load_config_file, load_config_text


@pytest.mark.parametrize(
    "tag, expected",
    [
        (
            "0x2::sui::SUI",
            ("0x" + "0" * 63 + "2", "sui", "SUI", None),
        ),
        (
            "0x2::coin::Coin<0x2::sui::SUI>",
            ("0x" + "0" * 63 + "2", "coin", "Coin", "0x2::sui::SUI"),
        ),
        (
            "0xABC::blob::Blob",
            ("0x" + "0" * 61 + "abc", "blob", "Blob", None),
        ),
    ],
)
def test_parse_struct_tag(tag, expected):
    assert tuple(parse_struct_tag(tag)) == expected


@pytest.mark.parametrize(
    "tag",
    [
        "sui::SUI",
        "0x2::sui",
        "0x2::coin::Coin<0x2::sui::SUI",
        "abc::blob::Blob",
    ],
)
def test_parse_struct_tag_invalid(tag):
    with pytest.raises(ValueError):
        parse_struct_tag(tag)


def test_same_struct_type_ignores_address_padding():
    assert same_struct_type("0x2::sui::SUI", normalize_address("0x2") + "::sui::SUI")
    assert not same_struct_type("0x2::sui::SUI", "0x3::sui::SUI")


@pytest.mark.parametrize(
    "nodes, expected",
    [
        (1, 1),
        (4, 3),
        (7, 5),
        (10, 7),
    ],
)
def test_default_quorum(config, nodes, expected):
    assert config.quorum_for(nodes) == expected


def test_explicit_quorum(config):
    config = config.model_copy(update={"quorum_threshold": 2})
    assert config.quorum_for(10) == 2


def test_config_requires_payment_token_type():
    with pytest.raises(ValidationError):
        NetworkConfig(endpoint="http://ledger.test", system_object_id="0x5")


def test_config_rejects_unknown_options():
    with pytest.raises(ValidationError):
        NetworkConfig(
            endpoint="http://ledger.test",
            system_object_id="0x5",
            payment_token_type="0x5::wal::WAL",
            quorum="all",
        )


CONFIG_YAML = """
network: testnet
endpoint: https://fullnode.testnet.example
faucet_url: https://faucet.testnet.example
payment_token_type: "0x8270::wal::WAL"
system_object_id: "0x6c2547"
exchange_ids:
  - "0x19825"
quorum_threshold: 2
per_node_timeout: 30
distribution_deadline: 90
storage_nodes:
  alpha: https://alpha.example
  beta: https://beta.example
"""


def test_load_config_text():
    config = load_config_text(CONFIG_YAML)
    assert config.endpoint == "https://fullnode.testnet.example"
    assert config.exchange_ids == ["0x19825"]
    assert config.quorum_for(2) == 2
    assert config.per_node_timeout == 30
    assert config.storage_nodes["beta"] == "https://beta.example"
    assert config.min_gas_balance == 1_000_000_000


def test_load_config_file(tmp_path):
    path = tmp_path / "network.yaml"
    path.write_text(CONFIG_YAML)
    assert load_config_file(str(path)).distribution_deadline == 90


def test_load_config_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config_file(str(tmp_path / "missing.yaml"))


def test_transaction_builder():
    tx = Transaction()
    tx.set_sender("0xa")
    result = tx.move_call(
        package="0xb",
        module="wal_exchange",
        function="exchange_all_for_wal",
        arguments=[tx.object("0xc"), tx.coin_with_balance("0x2::sui::SUI", 5)],
    )
    tx.transfer_objects([result], "0xa")

    assert result == ResultArg(index=0)
    assert isinstance(tx.commands[0], MoveCall)
    assert tx.commands[0].target == "0xb::wal_exchange::exchange_all_for_wal"
    assert isinstance(tx.commands[1], TransferObjects)
    assert tx.move_calls == [tx.commands[0]]

    # discriminated unions survive a round trip through JSON
    assert Transaction.model_validate_json(tx.model_dump_json()) == tx


def test_created_objects_filters_by_type():
    result = TransactionResult(
        digest="d",
        status=ExecutionStatus.SUCCESS,
        object_changes=[
            ObjectChange(type="mutated", object_id="0x1", object_type="0xb::blob::Blob"),
            ObjectChange(type="created", object_id="0x2", object_type="0xb::storage_resource::Storage"),
            ObjectChange(type="created", object_id="0x3", object_type="0x0b::blob::Blob"),
        ],
    )
    assert [c.object_id for c in result.created_objects("0xb::blob::Blob")] == ["0x3"]


def test_confirmation_set_rejects_foreign_blob():
    confirmations = ConfirmationSet(blob_id="blob-a", total_nodes=4)
    with pytest.raises(ValueError):
        confirmations.add(
            NodeConfirmation(
                node_id="node-0",
                blob_id="blob-b",
                serialized_message=b"m",
                signature=b"s",
            )
        )
    assert len(confirmations) == 0


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (Phase.IDLE, Phase.PROVISIONING, True),
        (Phase.IDLE, Phase.ENCODING, False),
        (Phase.PROVISIONING, Phase.ENCODING, True),
        (Phase.ENCODING, Phase.DISTRIBUTING, False),
        (Phase.REGISTERING, Phase.DISTRIBUTING, True),
        (Phase.DISTRIBUTING, Phase.CERTIFYING, True),
        (Phase.CERTIFYING, Phase.SUCCEEDED, True),
        (Phase.IDLE, Phase.CERTIFYING, True),
        (Phase.REGISTERING, Phase.FAILED, True),
        (Phase.SUCCEEDED, Phase.FAILED, False),
        (Phase.FAILED, Phase.FAILED, False),
        (Phase.FAILED, Phase.PROVISIONING, False),
    ],
)
def test_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed
