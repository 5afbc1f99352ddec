import pydantic
from pydantic import ConfigDict


class StrictModel(pydantic.BaseModel):
    model_config = ConfigDict(
        extra="forbid",
    )


class FrozenModel(pydantic.BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class ExtraModel(pydantic.BaseModel):
    model_config = ConfigDict(
        extra="allow",
    )
