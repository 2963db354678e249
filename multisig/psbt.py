"""
BIP174 partially signed transaction codec.

Only the fields the coordinator reads or writes are decoded; every other
key-value pair is kept verbatim so a merged or re-encoded PSBT loses nothing
a signer put into it.
"""
import base64
import binascii
import logging
import struct
from io import BytesIO

from multisig.crypto_utils import double_sha256
from multisig.exceptions import ParseError

LOGGER = logging.getLogger(__name__)

PSBT_MAGIC = b'psbt\xff'

PSBT_GLOBAL_UNSIGNED_TX = 0x00
PSBT_GLOBAL_VERSION = 0xfb

PSBT_IN_NON_WITNESS_UTXO = 0x00
PSBT_IN_WITNESS_UTXO = 0x01
PSBT_IN_PARTIAL_SIG = 0x02
PSBT_IN_SIGHASH_TYPE = 0x03
PSBT_IN_REDEEM_SCRIPT = 0x04
PSBT_IN_WITNESS_SCRIPT = 0x05
PSBT_IN_BIP32_DERIVATION = 0x06
PSBT_IN_FINAL_SCRIPTSIG = 0x07
PSBT_IN_FINAL_SCRIPTWITNESS = 0x08


def _read(stream, size):
    data = stream.read(size)
    if len(data) != size:
        raise ParseError('Unexpected end of data')
    return data


def read_compact_size(stream):
    prefix = _read(stream, 1)[0]
    if prefix < 0xfd:
        return prefix
    if prefix == 0xfd:
        return struct.unpack('<H', _read(stream, 2))[0]
    if prefix == 0xfe:
        return struct.unpack('<I', _read(stream, 4))[0]
    return struct.unpack('<Q', _read(stream, 8))[0]


def ser_compact_size(size):
    if size < 0xfd:
        return bytes([size])
    if size <= 0xffff:
        return b'\xfd' + struct.pack('<H', size)
    if size <= 0xffffffff:
        return b'\xfe' + struct.pack('<I', size)
    return b'\xff' + struct.pack('<Q', size)


def read_string(stream):
    return _read(stream, read_compact_size(stream))


def ser_string(data):
    return ser_compact_size(len(data)) + data


class TxIn(object):

    def __init__(self, prev_txid=b'\x00' * 32, vout=0, script_sig=b'', sequence=0xffffffff, witness=None):
        # prev_txid is kept in internal (little-endian) byte order
        self.prev_txid = prev_txid
        self.vout = vout
        self.script_sig = script_sig
        self.sequence = sequence
        self.witness = list(witness or [])

    @property
    def outpoint(self):
        return (self.prev_txid[::-1].hex(), self.vout)

    @classmethod
    def parse(cls, stream):
        prev_txid = _read(stream, 32)
        vout = struct.unpack('<I', _read(stream, 4))[0]
        script_sig = read_string(stream)
        sequence = struct.unpack('<I', _read(stream, 4))[0]
        return cls(prev_txid, vout, script_sig, sequence)

    def serialize(self):
        return (
            self.prev_txid
            + struct.pack('<I', self.vout)
            + ser_string(self.script_sig)
            + struct.pack('<I', self.sequence)
        )


class TxOut(object):

    def __init__(self, value=0, script_pubkey=b''):
        self.value = value
        self.script_pubkey = script_pubkey

    @classmethod
    def parse(cls, stream):
        value = struct.unpack('<q', _read(stream, 8))[0]
        return cls(value, read_string(stream))

    def serialize(self):
        return struct.pack('<q', self.value) + ser_string(self.script_pubkey)


class Transaction(object):

    def __init__(self, version=2, inputs=None, outputs=None, locktime=0):
        self.version = version
        self.inputs = list(inputs or [])
        self.outputs = list(outputs or [])
        self.locktime = locktime

    @classmethod
    def parse(cls, data):
        stream = BytesIO(data) if isinstance(data, (bytes, bytearray)) else data
        version = struct.unpack('<i', _read(stream, 4))[0]
        input_count = read_compact_size(stream)
        segwit = False
        if input_count == 0:
            flag = _read(stream, 1)[0]
            if flag != 1:
                raise ParseError('Invalid segwit flag')
            segwit = True
            input_count = read_compact_size(stream)
        inputs = [TxIn.parse(stream) for _ in range(input_count)]
        outputs = [TxOut.parse(stream) for _ in range(read_compact_size(stream))]
        if segwit:
            for tx_in in inputs:
                tx_in.witness = [read_string(stream) for _ in range(read_compact_size(stream))]
        locktime = struct.unpack('<I', _read(stream, 4))[0]
        if isinstance(data, (bytes, bytearray)) and stream.read(1):
            raise ParseError('Trailing data after transaction')
        return cls(version, inputs, outputs, locktime)

    def has_witness(self):
        return any(tx_in.witness for tx_in in self.inputs)

    def serialize(self, include_witness=True):
        segwit = include_witness and self.has_witness()
        result = struct.pack('<i', self.version)
        if segwit:
            result += b'\x00\x01'
        result += ser_compact_size(len(self.inputs))
        result += b''.join(tx_in.serialize() for tx_in in self.inputs)
        result += ser_compact_size(len(self.outputs))
        result += b''.join(tx_out.serialize() for tx_out in self.outputs)
        if segwit:
            for tx_in in self.inputs:
                result += ser_compact_size(len(tx_in.witness))
                result += b''.join(ser_string(item) for item in tx_in.witness)
        result += struct.pack('<I', self.locktime)
        return result

    @property
    def txid(self):
        return double_sha256(self.serialize(include_witness=False))[::-1].hex()

    def to_hex(self):
        return self.serialize().hex()


def _parse_map(stream):
    """Reads one key-value map, returning (key, value) pairs in stream order."""
    entries = []
    seen = set()
    while True:
        key = read_string(stream)
        if not key:
            return entries
        if key in seen:
            raise ParseError('Duplicate key in PSBT map')
        seen.add(key)
        entries.append((key, read_string(stream)))


def _ser_map(entries):
    return b''.join(ser_string(key) + ser_string(value) for key, value in entries) + b'\x00'


class PsbtInput(object):

    def __init__(self):
        self.non_witness_utxo = None
        self.witness_utxo = None
        self.partial_sigs = {}
        self.sighash = None
        self.redeem_script = b''
        self.witness_script = b''
        self.bip32_derivations = {}
        self.final_script_sig = b''
        self.final_script_witness = []
        self.unknown = {}

    @property
    def is_final(self):
        return bool(self.final_script_witness or self.final_script_sig)

    @property
    def script(self):
        """The script the multisig keys live in (witness script first)."""
        return self.witness_script or self.redeem_script

    @property
    def value(self):
        if self.witness_utxo is not None:
            return self.witness_utxo.value
        return None

    @classmethod
    def parse(cls, stream):
        psbt_in = cls()
        for key, value in _parse_map(stream):
            key_type = key[0]
            if key_type == PSBT_IN_NON_WITNESS_UTXO and len(key) == 1:
                psbt_in.non_witness_utxo = value
            elif key_type == PSBT_IN_WITNESS_UTXO and len(key) == 1:
                psbt_in.witness_utxo = TxOut.parse(BytesIO(value))
            elif key_type == PSBT_IN_PARTIAL_SIG:
                if len(key) not in (34, 66):
                    raise ParseError('Invalid partial signature key size')
                psbt_in.partial_sigs[key[1:]] = value
            elif key_type == PSBT_IN_SIGHASH_TYPE and len(key) == 1:
                if len(value) != 4:
                    raise ParseError('Invalid sighash type')
                psbt_in.sighash = struct.unpack('<I', value)[0]
            elif key_type == PSBT_IN_REDEEM_SCRIPT and len(key) == 1:
                psbt_in.redeem_script = value
            elif key_type == PSBT_IN_WITNESS_SCRIPT and len(key) == 1:
                psbt_in.witness_script = value
            elif key_type == PSBT_IN_BIP32_DERIVATION:
                if len(key) not in (34, 66):
                    raise ParseError('Invalid bip32 derivation key size')
                psbt_in.bip32_derivations[key[1:]] = value
            elif key_type == PSBT_IN_FINAL_SCRIPTSIG and len(key) == 1:
                psbt_in.final_script_sig = value
            elif key_type == PSBT_IN_FINAL_SCRIPTWITNESS and len(key) == 1:
                witness = BytesIO(value)
                psbt_in.final_script_witness = [read_string(witness) for _ in range(read_compact_size(witness))]
            else:
                psbt_in.unknown[key] = value
        return psbt_in

    def entries(self):
        entries = []
        if self.non_witness_utxo is not None:
            entries.append((bytes([PSBT_IN_NON_WITNESS_UTXO]), self.non_witness_utxo))
        if self.witness_utxo is not None:
            entries.append((bytes([PSBT_IN_WITNESS_UTXO]), self.witness_utxo.serialize()))
        for pubkey, sig in sorted(self.partial_sigs.items()):
            entries.append((bytes([PSBT_IN_PARTIAL_SIG]) + pubkey, sig))
        if self.sighash is not None:
            entries.append((bytes([PSBT_IN_SIGHASH_TYPE]), struct.pack('<I', self.sighash)))
        if self.redeem_script:
            entries.append((bytes([PSBT_IN_REDEEM_SCRIPT]), self.redeem_script))
        if self.witness_script:
            entries.append((bytes([PSBT_IN_WITNESS_SCRIPT]), self.witness_script))
        for pubkey, origin in sorted(self.bip32_derivations.items()):
            entries.append((bytes([PSBT_IN_BIP32_DERIVATION]) + pubkey, origin))
        if self.final_script_sig:
            entries.append((bytes([PSBT_IN_FINAL_SCRIPTSIG]), self.final_script_sig))
        if self.final_script_witness:
            witness = ser_compact_size(len(self.final_script_witness))
            witness += b''.join(ser_string(item) for item in self.final_script_witness)
            entries.append((bytes([PSBT_IN_FINAL_SCRIPTWITNESS]), witness))
        entries.extend(sorted(self.unknown.items()))
        return entries

    def serialize(self):
        return _ser_map(self.entries())


class PsbtOutput(object):

    def __init__(self, entries=None):
        self.unknown = dict(entries or [])

    @classmethod
    def parse(cls, stream):
        return cls(_parse_map(stream))

    def serialize(self):
        return _ser_map(sorted(self.unknown.items()))


class Psbt(object):

    def __init__(self, tx=None, inputs=None, outputs=None, unknown=None):
        self.tx = tx or Transaction()
        self.inputs = list(inputs) if inputs is not None else [PsbtInput() for _ in self.tx.inputs]
        self.outputs = list(outputs) if outputs is not None else [PsbtOutput() for _ in self.tx.outputs]
        self.unknown = dict(unknown or {})

    @classmethod
    def parse(cls, data: bytes):
        if not data.startswith(PSBT_MAGIC):
            raise ParseError('Missing PSBT magic bytes')
        stream = BytesIO(data[len(PSBT_MAGIC):])

        tx = None
        unknown = {}
        for key, value in _parse_map(stream):
            if key == bytes([PSBT_GLOBAL_UNSIGNED_TX]):
                tx = Transaction.parse(value)
            elif key == bytes([PSBT_GLOBAL_VERSION]) and value != b'\x00' * 4:
                raise ParseError('Only version 0 PSBTs are supported')
            else:
                unknown[key] = value
        if tx is None:
            raise ParseError('PSBT has no unsigned transaction')

        inputs = [PsbtInput.parse(stream) for _ in tx.inputs]
        outputs = [PsbtOutput.parse(stream) for _ in tx.outputs]
        if stream.read(1):
            raise ParseError('Trailing data after PSBT')
        return cls(tx, inputs, outputs, unknown)

    def serialize(self):
        global_entries = [(bytes([PSBT_GLOBAL_UNSIGNED_TX]), self.tx.serialize(include_witness=False))]
        global_entries.extend(sorted(self.unknown.items()))
        return (
            PSBT_MAGIC
            + _ser_map(global_entries)
            + b''.join(psbt_in.serialize() for psbt_in in self.inputs)
            + b''.join(psbt_out.serialize() for psbt_out in self.outputs)
        )

    def to_base64(self):
        return base64.b64encode(self.serialize()).decode('ascii')

    def to_hex(self):
        return self.serialize().hex()

    def copy(self):
        return Psbt.parse(self.serialize())

    @property
    def txid(self):
        return self.tx.txid

    def outpoints(self):
        return [tx_in.outpoint for tx_in in self.tx.inputs]


def _decode_base64(text):
    return base64.b64decode(text, validate=True)


def _decode_hex(text):
    return bytes.fromhex(text)


def decode(blob) -> Psbt:
    """
    Parses a PSBT given as base64 text, hex text or raw bytes.

    Any failure is reported as the same ParseError so callers do not need to
    know which encoding was attempted.
    """
    if isinstance(blob, Psbt):
        return blob
    if isinstance(blob, (bytes, bytearray)):
        blob = bytes(blob)
        if blob.startswith(PSBT_MAGIC):
            try:
                return Psbt.parse(blob)
            except ParseError as exc:
                LOGGER.debug('Binary PSBT rejected: %s', exc)
                raise ParseError()
        try:
            blob = blob.decode('ascii')
        except UnicodeDecodeError:
            raise ParseError()

    if not isinstance(blob, str) or not blob.strip():
        raise ParseError()

    text = ''.join(blob.split())
    for decoder in (_decode_base64, _decode_hex):
        try:
            raw = decoder(text)
        except (ValueError, binascii.Error):
            continue
        if not raw.startswith(PSBT_MAGIC):
            continue
        try:
            return Psbt.parse(raw)
        except ParseError as exc:
            LOGGER.debug('PSBT rejected by %s: %s', decoder.__name__, exc)
    raise ParseError()
