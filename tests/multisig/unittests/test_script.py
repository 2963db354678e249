import pytest

from multisig.exceptions import ParseError
from multisig.script import (
    Data,
    Opcode,
    OP_CHECKMULTISIG,
    build_multisig,
    decode_small_int,
    decompile,
    is_multisig,
    parse_multisig,
)

PUBKEY_1 = bytes.fromhex('0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798')
PUBKEY_2 = bytes.fromhex('02c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5')
PUBKEY_3 = bytes.fromhex('02f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9')


def test_decompile_direct_pushes_and_opcodes():
    script = bytes.fromhex('52') + b'\x21' + PUBKEY_1 + b'\x21' + PUBKEY_2 + bytes.fromhex('52ae')
    elements = decompile(script)
    assert elements == [Opcode(0x52), Data(PUBKEY_1), Data(PUBKEY_2), Opcode(0x52), Opcode(OP_CHECKMULTISIG)]


def test_decompile_pushdata1():
    payload = b'\xaa' * 80
    assert decompile(b'\x4c\x50' + payload) == [Data(payload)]


def test_decompile_truncated_push():
    with pytest.raises(ParseError):
        decompile(b'\x21' + PUBKEY_1[:10])
    with pytest.raises(ParseError):
        decompile(b'\x4d\x01')


def test_decode_small_int_from_both_encodings():
    assert decode_small_int(Opcode(0x00)) == 0
    assert decode_small_int(Opcode(0x51)) == 1
    assert decode_small_int(Opcode(0x60)) == 16
    assert decode_small_int(Data(b'\x02')) == 2
    assert decode_small_int(Data(b'\x11')) == 17
    assert decode_small_int(Data(b'\x81')) == -1


def test_decode_small_int_rejects_non_number_opcode():
    with pytest.raises(ParseError):
        decode_small_int(Opcode(OP_CHECKMULTISIG))


def test_build_and_parse_multisig():
    script = build_multisig(2, [PUBKEY_1, PUBKEY_2, PUBKEY_3])
    assert script.hex() == (
        '52' + '21' + PUBKEY_1.hex() + '21' + PUBKEY_2.hex() + '21' + PUBKEY_3.hex() + '53ae'
    )
    parsed = parse_multisig(script)
    assert parsed.m == 2
    assert parsed.n == 3
    assert parsed.pubkeys == [PUBKEY_1, PUBKEY_2, PUBKEY_3]


def test_parse_multisig_with_pushed_numbers():
    # M and N pushed as script numbers instead of OP_m / OP_n
    script = b'\x01\x02' + b'\x21' + PUBKEY_1 + b'\x21' + PUBKEY_2 + b'\x01\x02' + bytes([OP_CHECKMULTISIG])
    parsed = parse_multisig(script)
    assert (parsed.m, parsed.n) == (2, 2)


def test_parse_multisig_rejects_other_scripts():
    p2pk = b'\x21' + PUBKEY_1 + b'\xac'
    assert not is_multisig(p2pk)
    with pytest.raises(ParseError):
        parse_multisig(p2pk)
    with pytest.raises(ParseError):
        parse_multisig(bytes.fromhex('53') + b'\x21' + PUBKEY_1 + bytes.fromhex('52ae'))
