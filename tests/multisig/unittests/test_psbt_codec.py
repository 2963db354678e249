import base64

import pytest

from multisig import psbt as psbt_codec
from multisig.exceptions import ParseError
from tests.multisig.objects.obj_keys import XPUB_A, XPUB_B
from tests.multisig.objects.obj_psbt import FUNDING_TXID, PsbtBuilder


def test_decode_accepts_base64_hex_and_bytes():
    psbt = PsbtBuilder([XPUB_A, XPUB_B], 2).signed_by(0)
    raw = psbt.serialize()
    for blob in (psbt.to_base64(), psbt.to_hex(), raw, f'  {psbt.to_base64()}\n'):
        decoded = psbt_codec.decode(blob)
        assert decoded.serialize() == raw


def test_decode_rejects_garbage_uniformly():
    for blob in ('not a psbt', 'zz', base64.b64encode(b'hello').decode(), ''):
        with pytest.raises(ParseError) as exc:
            psbt_codec.decode(blob)
        assert exc.value.message == 'Invalid PSBT format. Use base64 or hex encoding.'


def test_unknown_fields_survive_serialization():
    psbt = PsbtBuilder([XPUB_A, XPUB_B], 2).unsigned()
    psbt.inputs[0].unknown[b'\xfc\x05proprietary'] = b'\x01\x02'
    psbt.unknown[b'\xfc\x05global'] = b'\x03'
    decoded = psbt_codec.decode(psbt.to_base64())
    assert decoded.inputs[0].unknown[b'\xfc\x05proprietary'] == b'\x01\x02'
    assert decoded.unknown[b'\xfc\x05global'] == b'\x03'


def test_duplicate_keys_are_rejected():
    psbt = PsbtBuilder([XPUB_A, XPUB_B], 2).unsigned()
    raw = psbt.serialize()
    # repeat the unsigned tx entry in the global map
    magic_len = len(psbt_codec.PSBT_MAGIC)
    tx = psbt.tx.serialize(include_witness=False)
    entry = psbt_codec.ser_string(b'\x00') + psbt_codec.ser_string(tx)
    duplicated = raw[:magic_len] + entry + raw[magic_len:]
    with pytest.raises(ParseError):
        psbt_codec.Psbt.parse(duplicated)


def test_outpoints_and_txid():
    psbt = PsbtBuilder([XPUB_A, XPUB_B], 2).unsigned()
    assert psbt.outpoints() == [(FUNDING_TXID, 0)]
    assert psbt.txid == psbt_codec.Transaction.parse(psbt.tx.serialize()).txid
    assert len(psbt.txid) == 64


def test_segwit_transaction_roundtrip():
    tx = psbt_codec.Transaction(
        version=2,
        inputs=[psbt_codec.TxIn(prev_txid=b'\x11' * 32, vout=1, witness=[b'', b'\x30\x01', b'\x52'])],
        outputs=[psbt_codec.TxOut(5000, b'\x00\x14' + b'\x22' * 20)],
    )
    raw = tx.serialize()
    assert raw[4:6] == b'\x00\x01'
    parsed = psbt_codec.Transaction.parse(raw)
    assert parsed.inputs[0].witness == [b'', b'\x30\x01', b'\x52']
    assert parsed.txid == tx.txid
