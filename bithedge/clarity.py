"""Clarity values: constructors, consensus serialization and c32 addresses.

Contract call arguments are built from these values, serialized to hex for
the node's read-only endpoint, and stored as JSON in pending transaction
payloads.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

C32_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
HASH160_LENGTH = 20
CHECKSUM_LENGTH = 4
MAX_NAME_LENGTH = 128

UINT_MAX = 2**128 - 1
INT_MIN = -(2**127)
INT_MAX = 2**127 - 1

ADDRESS_VERSION_MAINNET_SINGLE_SIG = 22
ADDRESS_VERSION_MAINNET_MULTI_SIG = 20
ADDRESS_VERSION_TESTNET_SINGLE_SIG = 26
ADDRESS_VERSION_TESTNET_MULTI_SIG = 21


class ClarityType(IntEnum):
    INT = 0x00
    UINT = 0x01
    BUFFER = 0x02
    BOOL_TRUE = 0x03
    BOOL_FALSE = 0x04
    PRINCIPAL_STANDARD = 0x05
    PRINCIPAL_CONTRACT = 0x06
    RESPONSE_OK = 0x07
    RESPONSE_ERR = 0x08
    OPTIONAL_NONE = 0x09
    OPTIONAL_SOME = 0x0A
    LIST = 0x0B
    TUPLE = 0x0C
    STRING_ASCII = 0x0D
    STRING_UTF8 = 0x0E


_TYPE_NAMES = {
    ClarityType.INT: "int",
    ClarityType.UINT: "uint",
    ClarityType.BUFFER: "buffer",
    ClarityType.BOOL_TRUE: "bool",
    ClarityType.BOOL_FALSE: "bool",
    ClarityType.PRINCIPAL_STANDARD: "principal",
    ClarityType.PRINCIPAL_CONTRACT: "contract_principal",
    ClarityType.RESPONSE_OK: "ok",
    ClarityType.RESPONSE_ERR: "err",
    ClarityType.OPTIONAL_NONE: "none",
    ClarityType.OPTIONAL_SOME: "some",
    ClarityType.LIST: "list",
    ClarityType.TUPLE: "tuple",
    ClarityType.STRING_ASCII: "string-ascii",
    ClarityType.STRING_UTF8: "string-utf8",
}


class ClarityError(ValueError):
    """Raised for values that cannot be represented or decoded."""


@dataclass(frozen=True)
class ClarityValue:
    """A typed Clarity value.

    ``value`` holds the Python payload: ``int`` for integers, ``bytes`` for
    buffers, ``bool`` for booleans, ``str`` for strings and principals
    (``address`` or ``address.contract-name``), the wrapped ``ClarityValue``
    for ok/err/some, a tuple of values for lists and a tuple of
    ``(name, value)`` pairs for tuples.
    """

    type: ClarityType
    value: Any = None

    @property
    def type_name(self) -> str:
        return _TYPE_NAMES[self.type]


# --- constructors ---


def uint_cv(value: int) -> ClarityValue:
    value = int(value)
    if not 0 <= value <= UINT_MAX:
        raise ClarityError(f"uint out of range: {value}")
    return ClarityValue(ClarityType.UINT, value)


def int_cv(value: int) -> ClarityValue:
    value = int(value)
    if not INT_MIN <= value <= INT_MAX:
        raise ClarityError(f"int out of range: {value}")
    return ClarityValue(ClarityType.INT, value)


def bool_cv(value: bool) -> ClarityValue:
    return ClarityValue(ClarityType.BOOL_TRUE if value else ClarityType.BOOL_FALSE, bool(value))


def true_cv() -> ClarityValue:
    return bool_cv(True)


def false_cv() -> ClarityValue:
    return bool_cv(False)


def buffer_cv(data: bytes) -> ClarityValue:
    return ClarityValue(ClarityType.BUFFER, bytes(data))


def string_ascii_cv(text: str) -> ClarityValue:
    if not text.isascii():
        raise ClarityError("string-ascii values must only contain ASCII characters")
    return ClarityValue(ClarityType.STRING_ASCII, text)


def string_utf8_cv(text: str) -> ClarityValue:
    return ClarityValue(ClarityType.STRING_UTF8, text)


def _check_address_shape(address: str) -> None:
    if not address or not address.upper().startswith("S") or not 28 <= len(address) <= 41:
        raise ClarityError(f"Invalid Stacks address: {address!r}")


def standard_principal_cv(address: str) -> ClarityValue:
    _check_address_shape(address)
    return ClarityValue(ClarityType.PRINCIPAL_STANDARD, address)


def contract_principal_cv(address: str, contract_name: str) -> ClarityValue:
    _check_address_shape(address)
    if not contract_name or len(contract_name) > MAX_NAME_LENGTH:
        raise ClarityError(f"Invalid contract name: {contract_name!r}")
    return ClarityValue(ClarityType.PRINCIPAL_CONTRACT, f"{address}.{contract_name}")


def principal_cv(principal: str) -> ClarityValue:
    """Build a standard or contract principal from its text form."""
    if "." in principal:
        address, contract_name = principal.split(".", 1)
        return contract_principal_cv(address, contract_name)
    return standard_principal_cv(principal)


def none_cv() -> ClarityValue:
    return ClarityValue(ClarityType.OPTIONAL_NONE)


def some_cv(value: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.OPTIONAL_SOME, value)


def optional_cv(value: ClarityValue | None) -> ClarityValue:
    return none_cv() if value is None else some_cv(value)


def ok_cv(value: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.RESPONSE_OK, value)


def err_cv(value: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.RESPONSE_ERR, value)


def list_cv(values: Iterable[ClarityValue]) -> ClarityValue:
    return ClarityValue(ClarityType.LIST, tuple(values))


def tuple_cv(data: Mapping[str, ClarityValue]) -> ClarityValue:
    for name in data:
        if not name or len(name) > MAX_NAME_LENGTH:
            raise ClarityError(f"Invalid tuple key: {name!r}")
    return ClarityValue(ClarityType.TUPLE, tuple(sorted(data.items())))


# --- c32check addresses ---


def _double_sha256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def c32_encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    chars = []
    while number > 0:
        number, remainder = divmod(number, 32)
        chars.append(C32_ALPHABET[remainder])
    leading_zeros = len(data) - len(data.lstrip(b"\x00"))
    return "0" * leading_zeros + "".join(reversed(chars))


def _normalize_c32(text: str) -> str:
    return text.upper().replace("O", "0").replace("L", "1").replace("I", "1")


def c32_decode(text: str) -> bytes:
    normalized = _normalize_c32(text)
    number = 0
    for char in normalized:
        index = C32_ALPHABET.find(char)
        if index < 0:
            raise ClarityError(f"Invalid c32 character: {char!r}")
        number = number * 32 + index
    leading_zeros = len(normalized) - len(normalized.lstrip("0"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * leading_zeros + body


def c32_address(version: int, hash160: bytes) -> str:
    if not 0 <= version < 32:
        raise ClarityError(f"Invalid address version: {version}")
    if len(hash160) != HASH160_LENGTH:
        raise ClarityError("hash160 must be 20 bytes")
    checksum = _double_sha256(bytes([version]) + hash160)[:CHECKSUM_LENGTH]
    return "S" + C32_ALPHABET[version] + c32_encode(hash160 + checksum)


def c32_address_decode(address: str) -> tuple[int, bytes]:
    """Return ``(version, hash160)`` for a Stacks address, verifying its checksum."""
    normalized = _normalize_c32(address)
    if len(normalized) < 3 or normalized[0] != "S":
        raise ClarityError(f"Invalid Stacks address: {address!r}")
    version = C32_ALPHABET.find(normalized[1])
    if version < 0:
        raise ClarityError(f"Invalid address version in {address!r}")
    payload = c32_decode(normalized[2:])
    if len(payload) != HASH160_LENGTH + CHECKSUM_LENGTH:
        raise ClarityError(f"Invalid address length: {address!r}")
    hash160, checksum = payload[:HASH160_LENGTH], payload[HASH160_LENGTH:]
    if _double_sha256(bytes([version]) + hash160)[:CHECKSUM_LENGTH] != checksum:
        raise ClarityError(f"Invalid address checksum: {address!r}")
    return version, hash160


def is_valid_address(address: str) -> bool:
    try:
        c32_address_decode(address)
    except ClarityError:
        return False
    return True


# --- serialization ---


def _length_prefixed(data: bytes) -> bytes:
    return len(data).to_bytes(4, "big") + data


def _serialize_address(address: str) -> bytes:
    version, hash160 = c32_address_decode(address)
    return bytes([version]) + hash160


def serialize_cv(cv: ClarityValue) -> bytes:
    prefix = bytes([cv.type])
    match cv.type:
        case ClarityType.INT:
            return prefix + cv.value.to_bytes(16, "big", signed=True)
        case ClarityType.UINT:
            return prefix + cv.value.to_bytes(16, "big")
        case ClarityType.BUFFER:
            return prefix + _length_prefixed(cv.value)
        case ClarityType.BOOL_TRUE | ClarityType.BOOL_FALSE | ClarityType.OPTIONAL_NONE:
            return prefix
        case ClarityType.PRINCIPAL_STANDARD:
            return prefix + _serialize_address(cv.value)
        case ClarityType.PRINCIPAL_CONTRACT:
            address, name = cv.value.split(".", 1)
            encoded_name = name.encode("ascii")
            return prefix + _serialize_address(address) + bytes([len(encoded_name)]) + encoded_name
        case ClarityType.RESPONSE_OK | ClarityType.RESPONSE_ERR | ClarityType.OPTIONAL_SOME:
            return prefix + serialize_cv(cv.value)
        case ClarityType.LIST:
            items = b"".join(serialize_cv(item) for item in cv.value)
            return prefix + len(cv.value).to_bytes(4, "big") + items
        case ClarityType.TUPLE:
            out = bytearray(prefix + len(cv.value).to_bytes(4, "big"))
            for name, value in cv.value:
                encoded_name = name.encode("ascii")
                out += bytes([len(encoded_name)]) + encoded_name + serialize_cv(value)
            return bytes(out)
        case ClarityType.STRING_ASCII:
            return prefix + _length_prefixed(cv.value.encode("ascii"))
        case ClarityType.STRING_UTF8:
            return prefix + _length_prefixed(cv.value.encode("utf-8"))
    raise ClarityError(f"Unknown Clarity type: {cv.type!r}")


def cv_to_hex(cv: ClarityValue) -> str:
    return "0x" + serialize_cv(cv).hex()


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def read(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise ClarityError("Unexpected end of serialized Clarity value")
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def read_u8(self) -> int:
        return self.read(1)[0]

    def read_u32(self) -> int:
        return int.from_bytes(self.read(4), "big")

    def read_address(self) -> str:
        version = self.read_u8()
        return c32_address(version, self.read(HASH160_LENGTH))


def _read_cv(reader: _Reader) -> ClarityValue:
    type_id = reader.read_u8()
    try:
        cv_type = ClarityType(type_id)
    except ValueError:
        raise ClarityError(f"Unknown Clarity type id: {type_id:#04x}") from None
    match cv_type:
        case ClarityType.INT:
            return int_cv(int.from_bytes(reader.read(16), "big", signed=True))
        case ClarityType.UINT:
            return uint_cv(int.from_bytes(reader.read(16), "big"))
        case ClarityType.BUFFER:
            return buffer_cv(reader.read(reader.read_u32()))
        case ClarityType.BOOL_TRUE:
            return true_cv()
        case ClarityType.BOOL_FALSE:
            return false_cv()
        case ClarityType.PRINCIPAL_STANDARD:
            return ClarityValue(cv_type, reader.read_address())
        case ClarityType.PRINCIPAL_CONTRACT:
            address = reader.read_address()
            name = reader.read(reader.read_u8()).decode("ascii")
            return ClarityValue(cv_type, f"{address}.{name}")
        case ClarityType.RESPONSE_OK | ClarityType.RESPONSE_ERR | ClarityType.OPTIONAL_SOME:
            return ClarityValue(cv_type, _read_cv(reader))
        case ClarityType.OPTIONAL_NONE:
            return none_cv()
        case ClarityType.LIST:
            count = reader.read_u32()
            return list_cv(_read_cv(reader) for _ in range(count))
        case ClarityType.TUPLE:
            count = reader.read_u32()
            entries = {}
            for _ in range(count):
                name = reader.read(reader.read_u8()).decode("ascii")
                entries[name] = _read_cv(reader)
            return tuple_cv(entries)
        case ClarityType.STRING_ASCII:
            return string_ascii_cv(reader.read(reader.read_u32()).decode("ascii"))
        case ClarityType.STRING_UTF8:
            return string_utf8_cv(reader.read(reader.read_u32()).decode("utf-8"))
    raise ClarityError(f"Unhandled Clarity type: {cv_type!r}")


def deserialize_cv(data: bytes | str) -> ClarityValue:
    """Decode a serialized value from bytes or a (``0x``-prefixed) hex string."""
    if isinstance(data, str):
        text = data[2:] if data.startswith("0x") else data
        data = bytes.fromhex(text)
    reader = _Reader(data)
    cv = _read_cv(reader)
    if reader.offset != len(data):
        raise ClarityError("Trailing bytes after serialized Clarity value")
    return cv


# --- conversions ---


def cv_to_value(cv: ClarityValue) -> Any:
    """Unwrap a Clarity value into plain Python data.

    Responses and ``some`` unwrap to their inner value, ``none`` to ``None``
    and tuples to dicts.
    """
    match cv.type:
        case ClarityType.RESPONSE_OK | ClarityType.RESPONSE_ERR | ClarityType.OPTIONAL_SOME:
            return cv_to_value(cv.value)
        case ClarityType.OPTIONAL_NONE:
            return None
        case ClarityType.LIST:
            return [cv_to_value(item) for item in cv.value]
        case ClarityType.TUPLE:
            return {name: cv_to_value(value) for name, value in cv.value}
    return cv.value


def cv_to_json(cv: ClarityValue) -> dict[str, Any]:
    name = cv.type_name
    match cv.type:
        case ClarityType.INT | ClarityType.UINT:
            return {"type": name, "value": str(cv.value)}
        case ClarityType.BUFFER:
            return {"type": name, "value": cv.value.hex()}
        case ClarityType.RESPONSE_OK | ClarityType.RESPONSE_ERR | ClarityType.OPTIONAL_SOME:
            return {"type": name, "value": cv_to_json(cv.value)}
        case ClarityType.OPTIONAL_NONE:
            return {"type": name, "value": None}
        case ClarityType.LIST:
            return {"type": name, "value": [cv_to_json(item) for item in cv.value]}
        case ClarityType.TUPLE:
            return {"type": name, "value": {key: cv_to_json(value) for key, value in cv.value}}
    return {"type": name, "value": cv.value}


def cv_from_json(data: Mapping[str, Any]) -> ClarityValue:
    kind, value = data["type"], data.get("value")
    match kind:
        case "int":
            return int_cv(int(value))
        case "uint":
            return uint_cv(int(value))
        case "buffer":
            return buffer_cv(bytes.fromhex(value))
        case "bool":
            return bool_cv(bool(value))
        case "principal" | "contract_principal":
            return principal_cv(value)
        case "ok":
            return ok_cv(cv_from_json(value))
        case "err":
            return err_cv(cv_from_json(value))
        case "some":
            return some_cv(cv_from_json(value))
        case "none":
            return none_cv()
        case "list":
            return list_cv(cv_from_json(item) for item in value)
        case "tuple":
            return tuple_cv({key: cv_from_json(item) for key, item in value.items()})
        case "string-ascii":
            return string_ascii_cv(value)
        case "string-utf8":
            return string_utf8_cv(value)
    raise ClarityError(f"Unknown Clarity JSON type: {kind!r}")


# Wallet front-ends pass arguments as {cvFunction, rawValue} pairs.
_SERIALIZABLE_BUILDERS = {
    "uintCV": lambda raw: uint_cv(int(raw)),
    "intCV": lambda raw: int_cv(int(raw)),
    "boolCV": lambda raw: bool_cv(raw in (True, "true", "True", 1, "1")),
    "standardPrincipalCV": standard_principal_cv,
    "contractPrincipalCV": principal_cv,
    "stringAsciiCV": string_ascii_cv,
    "stringUtf8CV": string_utf8_cv,
}
_SERIALIZABLE_NAMES = {
    ClarityType.UINT: "uintCV",
    ClarityType.INT: "intCV",
    ClarityType.BOOL_TRUE: "boolCV",
    ClarityType.BOOL_FALSE: "boolCV",
    ClarityType.PRINCIPAL_STANDARD: "standardPrincipalCV",
    ClarityType.PRINCIPAL_CONTRACT: "contractPrincipalCV",
    ClarityType.STRING_ASCII: "stringAsciiCV",
    ClarityType.STRING_UTF8: "stringUtf8CV",
}


def to_serializable_arg(cv: ClarityValue) -> dict[str, str]:
    try:
        function = _SERIALIZABLE_NAMES[cv.type]
    except KeyError:
        raise ClarityError(f"{cv.type_name} arguments have no serializable form") from None
    raw = str(cv.value).lower() if isinstance(cv.value, bool) else str(cv.value)
    return {"cvFunction": function, "rawValue": raw}


def from_serializable_arg(arg: Mapping[str, Any]) -> ClarityValue:
    try:
        builder = _SERIALIZABLE_BUILDERS[arg["cvFunction"]]
    except KeyError:
        raise ClarityError(f"Unsupported cvFunction: {arg.get('cvFunction')!r}") from None
    return builder(arg["rawValue"])
