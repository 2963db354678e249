"""
Script decompilation and the sorted-multisig script template.

Signer software encodes the M and N constants of a multisig script either as
small-integer opcodes (OP_1..OP_16) or as pushed script numbers, so
`decompile` yields a tagged `ScriptElement` and `decode_small_int` handles
both variants explicitly.
"""
import struct
from collections import namedtuple

from multisig.exceptions import ParseError

OP_0 = 0x00
OP_PUSHDATA1 = 0x4c
OP_PUSHDATA2 = 0x4d
OP_PUSHDATA4 = 0x4e
OP_1NEGATE = 0x4f
OP_1 = 0x51
OP_16 = 0x60
OP_CHECKMULTISIG = 0xae

PUBKEY_LENGTHS = (33, 65)
MAX_MULTISIG_KEYS = 15


class ScriptElement(object):
    __slots__ = ()

    is_data = False


class Opcode(ScriptElement):
    __slots__ = ('value',)

    def __init__(self, value):
        self.value = value

    def __eq__(self, other):
        return isinstance(other, Opcode) and other.value == self.value

    def __hash__(self):
        return hash(('op', self.value))

    def __repr__(self):
        return f'Opcode(0x{self.value:02x})'


class Data(ScriptElement):
    __slots__ = ('value',)

    is_data = True

    def __init__(self, value):
        self.value = bytes(value)

    def __eq__(self, other):
        return isinstance(other, Data) and other.value == self.value

    def __hash__(self):
        return hash(('data', self.value))

    def __repr__(self):
        return f'Data({self.value.hex()})'


MultisigScript = namedtuple('MultisigScript', ['m', 'n', 'pubkeys'])


def decompile(script: bytes) -> list:
    elements = []
    i = 0
    length = len(script)
    while i < length:
        opcode = script[i]
        i += 1
        if 0 < opcode < OP_PUSHDATA1:
            size = opcode
        elif opcode == OP_PUSHDATA1:
            if i + 1 > length:
                raise ParseError('Truncated script push')
            size = script[i]
            i += 1
        elif opcode == OP_PUSHDATA2:
            if i + 2 > length:
                raise ParseError('Truncated script push')
            size = struct.unpack('<H', script[i:i + 2])[0]
            i += 2
        elif opcode == OP_PUSHDATA4:
            if i + 4 > length:
                raise ParseError('Truncated script push')
            size = struct.unpack('<I', script[i:i + 4])[0]
            i += 4
        else:
            elements.append(Opcode(opcode))
            continue

        if i + size > length:
            raise ParseError('Truncated script push')
        elements.append(Data(script[i:i + size]))
        i += size
    return elements


def decode_script_number(data: bytes) -> int:
    if len(data) > 4:
        raise ParseError('Script number overflow')
    if not data:
        return 0
    value = int.from_bytes(data, 'little')
    if data[-1] & 0x80:
        value &= ~(0x80 << (8 * (len(data) - 1)))
        return -value
    return value


def decode_small_int(element: ScriptElement) -> int:
    if isinstance(element, Opcode):
        if element.value == OP_0:
            return 0
        if element.value == OP_1NEGATE:
            return -1
        if OP_1 <= element.value <= OP_16:
            return element.value - OP_1 + 1
        raise ParseError(f'Opcode 0x{element.value:02x} is not a number')
    return decode_script_number(element.value)


def encode_small_int(value: int) -> bytes:
    if value == 0:
        return bytes([OP_0])
    if 1 <= value <= 16:
        return bytes([OP_1 + value - 1])
    raise ValueError(f'{value} is not encodable as a small integer opcode')


def push_data(data: bytes) -> bytes:
    size = len(data)
    if size < OP_PUSHDATA1:
        return bytes([size]) + data
    if size <= 0xff:
        return bytes([OP_PUSHDATA1, size]) + data
    if size <= 0xffff:
        return bytes([OP_PUSHDATA2]) + struct.pack('<H', size) + data
    return bytes([OP_PUSHDATA4]) + struct.pack('<I', size) + data


def build_multisig(m: int, pubkeys) -> bytes:
    """OP_m <pubkey>... OP_n OP_CHECKMULTISIG, keys in the order given."""
    script = encode_small_int(m)
    for pubkey in pubkeys:
        script += push_data(pubkey)
    script += encode_small_int(len(pubkeys))
    script += bytes([OP_CHECKMULTISIG])
    return script


def parse_multisig(script: bytes) -> MultisigScript:
    elements = decompile(script)
    if len(elements) < 4 or elements[-1] != Opcode(OP_CHECKMULTISIG):
        raise ParseError('Script is not a multisig script')

    m = decode_small_int(elements[0])
    n = decode_small_int(elements[-2])
    pubkeys = [
        element.value
        for element in elements[1:-2]
        if element.is_data and len(element.value) in PUBKEY_LENGTHS
    ]
    if not 1 <= m <= n:
        raise ParseError(f'Invalid multisig threshold {m}-of-{n}')
    return MultisigScript(m=m, n=n, pubkeys=pubkeys)


def is_multisig(script: bytes) -> bool:
    try:
        parse_multisig(script)
    except ParseError:
        return False
    return True
