from __future__ import annotations

import pytest

from bithedge import clarity

DEPLOYER = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"
MAINNET_BURN = "SP000000000000000000002Q6VF78"
TESTNET_BURN = "ST000000000000000000002AMW42H"


def test_c32_boot_addresses():
    assert clarity.c32_address(22, b"\x00" * 20) == MAINNET_BURN
    assert clarity.c32_address(26, b"\x00" * 20) == TESTNET_BURN
    assert clarity.c32_address_decode(MAINNET_BURN) == (22, b"\x00" * 20)


def test_c32_address_round_trip():
    version, hash160 = clarity.c32_address_decode(DEPLOYER)
    assert version == clarity.ADDRESS_VERSION_TESTNET_SINGLE_SIG
    assert len(hash160) == 20
    assert clarity.c32_address(version, hash160) == DEPLOYER


def test_c32_checksum_is_verified():
    assert clarity.is_valid_address(DEPLOYER)
    assert not clarity.is_valid_address(DEPLOYER[:-1] + "N")
    assert not clarity.is_valid_address("not-an-address")


def test_c32_encode_keeps_leading_zero_bytes():
    data = b"\x00\x00\x01"
    assert clarity.c32_encode(data) == "001"
    assert clarity.c32_decode("001") == data


def test_serialize_known_values():
    assert clarity.cv_to_hex(clarity.uint_cv(1)) == "0x01" + "00" * 15 + "01"
    assert clarity.cv_to_hex(clarity.int_cv(-1)) == "0x00" + "ff" * 16
    assert clarity.cv_to_hex(clarity.true_cv()) == "0x03"
    assert clarity.cv_to_hex(clarity.none_cv()) == "0x09"
    assert clarity.cv_to_hex(clarity.string_ascii_cv("hello")) == "0x0d0000000568656c6c6f"
    assert (
        clarity.cv_to_hex(clarity.standard_principal_cv(MAINNET_BURN)) == "0x0516" + "00" * 20
    )


def test_nested_value_survives_serialization():
    value = clarity.tuple_cv(
        {
            "owner": clarity.standard_principal_cv(DEPLOYER),
            "amount": clarity.some_cv(clarity.uint_cv(50_000_000)),
            "ids": clarity.list_cv([clarity.uint_cv(1), clarity.uint_cv(2)]),
            "memo": clarity.string_utf8_cv("BTC ₿"),
            "pool": clarity.contract_principal_cv(DEPLOYER, "liquidity-pool-vault"),
            "result": clarity.err_cv(clarity.uint_cv(404)),
            "data": clarity.buffer_cv(b"\xde\xad"),
        }
    )
    decoded = clarity.deserialize_cv(clarity.cv_to_hex(value))
    assert decoded == value
    assert clarity.cv_to_value(decoded) == {
        "amount": 50_000_000,
        "data": b"\xde\xad",
        "ids": [1, 2],
        "memo": "BTC ₿",
        "owner": DEPLOYER,
        "pool": f"{DEPLOYER}.liquidity-pool-vault",
        "result": 404,
    }


def test_tuple_keys_are_sorted():
    value = clarity.tuple_cv({"b": clarity.uint_cv(2), "a": clarity.uint_cv(1)})
    assert [name for name, _ in value.value] == ["a", "b"]


def test_deserialize_rejects_trailing_bytes():
    with pytest.raises(clarity.ClarityError):
        clarity.deserialize_cv(clarity.serialize_cv(clarity.true_cv()) + b"\x00")
    with pytest.raises(clarity.ClarityError):
        clarity.deserialize_cv("0x01ff")


def test_constructor_range_checks():
    with pytest.raises(clarity.ClarityError):
        clarity.uint_cv(-1)
    with pytest.raises(clarity.ClarityError):
        clarity.int_cv(clarity.INT_MAX + 1)
    with pytest.raises(clarity.ClarityError):
        clarity.string_ascii_cv("₿")
    with pytest.raises(clarity.ClarityError):
        clarity.standard_principal_cv("0xabc")


def test_json_form_round_trip():
    value = clarity.ok_cv(
        clarity.tuple_cv({"count": clarity.uint_cv(3), "active": clarity.false_cv()})
    )
    encoded = clarity.cv_to_json(value)
    assert encoded["type"] == "ok"
    assert encoded["value"]["value"]["count"] == {"type": "uint", "value": "3"}
    assert clarity.cv_from_json(encoded) == value


def test_serializable_args():
    assert clarity.to_serializable_arg(clarity.uint_cv(42)) == {
        "cvFunction": "uintCV",
        "rawValue": "42",
    }
    assert clarity.to_serializable_arg(clarity.true_cv())["rawValue"] == "true"
    assert clarity.from_serializable_arg({"cvFunction": "boolCV", "rawValue": "false"}) == (
        clarity.false_cv()
    )
    principal = clarity.from_serializable_arg(
        {"cvFunction": "contractPrincipalCV", "rawValue": f"{DEPLOYER}.btc-oracle"}
    )
    assert principal.type is clarity.ClarityType.PRINCIPAL_CONTRACT
    with pytest.raises(clarity.ClarityError):
        clarity.to_serializable_arg(clarity.none_cv())
