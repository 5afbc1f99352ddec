from typing import NamedTuple

BlobId = str
ObjectId = str
Address = str
Digest = str
NodeId = str

# fully qualified coin type like `0x2::sui::SUI`
CoinType = str

# fully qualified struct type like `0xabc::blob::Blob`
StructTag = str

Epochs = int


class ParsedStructTag(NamedTuple):
    address: str
    module: str
    name: str
    type_params: str | None = None


def normalize_address(address: str) -> str:
    if not address.startswith("0x"):
        raise ValueError(f"Invalid address: {address}")
    return "0x" + address[2:].lower().rjust(64, "0")


def parse_struct_tag(tag: StructTag) -> ParsedStructTag:
    """
    Split a struct tag into its address, module, name and (raw) type parameters.

    `0x2::coin::Coin<0x2::sui::SUI>` -> ("0x00..02", "coin", "Coin", "0x2::sui::SUI")
    """
    type_params = None
    if "<" in tag:
        if not tag.endswith(">"):
            raise ValueError(f"Invalid struct tag: {tag}")
        tag, type_params = tag[:-1].split("<", 1)

    parts = tag.split("::")
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid struct tag: {tag}")
    address, module, name = parts
    return ParsedStructTag(
        address=normalize_address(address),
        module=module,
        name=name,
        type_params=type_params,
    )


def same_struct_type(a: StructTag, b: StructTag) -> bool:
    try:
        return parse_struct_tag(a) == parse_struct_tag(b)
    except ValueError:
        return a == b
