from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field

from blobflows.models.common import ExtraModel, StrictModel
from blobflows.models.primitives import (
    Address,
    CoinType,
    Digest,
    ObjectId,
    StructTag,
    same_struct_type,
)


class ObjectArg(StrictModel):
    kind: Literal["object"] = "object"
    object_id: ObjectId


class PureArg(StrictModel):
    kind: Literal["pure"] = "pure"
    value: Any


class CoinArg(StrictModel):
    """
    A coin of `coin_type` holding exactly `balance`, to be selected (and split) by the signer.
    `balance=None` lets the signer pick the amount required by the call.
    """

    kind: Literal["coin"] = "coin"
    coin_type: CoinType
    balance: Optional[int] = None


class ResultArg(StrictModel):
    kind: Literal["result"] = "result"
    index: int


Argument = Annotated[
    Union[ObjectArg, PureArg, CoinArg, ResultArg],
    Field(discriminator="kind"),
]


class MoveCall(StrictModel):
    kind: Literal["move_call"] = "move_call"
    package: str
    module: str
    function: str
    type_arguments: list[str] = Field(default_factory=list)
    arguments: list[Argument] = Field(default_factory=list)

    @property
    def target(self) -> str:
        return f"{self.package}::{self.module}::{self.function}"


class TransferObjects(StrictModel):
    kind: Literal["transfer_objects"] = "transfer_objects"
    objects: list[Argument]
    recipient: Address


Command = Annotated[
    Union[MoveCall, TransferObjects],
    Field(discriminator="kind"),
]


class Transaction(StrictModel):
    """
    An unsigned programmable transaction.
    Signing, gas selection and coin selection are left to the `Signer`.
    """

    sender: Optional[Address] = None
    commands: list[Command] = Field(default_factory=list)

    def set_sender(self, sender: Address) -> None:
        self.sender = sender

    @staticmethod
    def object(object_id: ObjectId) -> ObjectArg:
        return ObjectArg(object_id=object_id)

    @staticmethod
    def pure(value: Any) -> PureArg:
        return PureArg(value=value)

    @staticmethod
    def coin_with_balance(coin_type: CoinType, balance: Optional[int] = None) -> CoinArg:
        return CoinArg(coin_type=coin_type, balance=balance)

    def move_call(
        self,
        package: str,
        module: str,
        function: str,
        arguments: list[Argument],
        type_arguments: Optional[list[str]] = None,
    ) -> ResultArg:
        self.commands.append(
            MoveCall(
                package=package,
                module=module,
                function=function,
                arguments=arguments,
                type_arguments=type_arguments or [],
            )
        )
        return ResultArg(index=len(self.commands) - 1)

    def transfer_objects(self, objects: list[Argument], recipient: Address) -> None:
        self.commands.append(TransferObjects(objects=objects, recipient=recipient))

    @property
    def move_calls(self) -> list[MoveCall]:
        return [c for c in self.commands if isinstance(c, MoveCall)]


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class ObjectChange(ExtraModel):
    type: str
    object_id: ObjectId
    object_type: Optional[StructTag] = None


class TransactionResult(StrictModel):
    digest: Digest
    status: ExecutionStatus
    error: Optional[str] = None
    object_changes: list[ObjectChange] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def created_objects(self, object_type: StructTag) -> list[ObjectChange]:
        return [
            change
            for change in self.object_changes
            if change.type == "created"
            and change.object_type is not None
            and same_struct_type(change.object_type, object_type)
        ]


class LedgerObject(StrictModel):
    object_id: ObjectId
    type: StructTag
    fields: dict[str, Any] = Field(default_factory=dict)
