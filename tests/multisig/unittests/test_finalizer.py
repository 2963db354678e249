import pytest

from multisig import psbt as psbt_codec
from multisig.exceptions import FinalizationError
from multisig.finalizer import finalize
from tests.multisig.objects.obj_keys import XPUB_A, XPUB_B, XPUB_C
from tests.multisig.objects.obj_psbt import FUNDING_TXID, PsbtBuilder


def test_finalize_with_missing_signature_fails():
    builder = PsbtBuilder([XPUB_A, XPUB_B], 2)
    with pytest.raises(FinalizationError) as exc:
        finalize(builder.signed_by(0).to_base64())
    assert exc.value.message == 'Input 0 has 1 of 2 required signatures'


def test_finalize_builds_witness_in_script_order():
    builder = PsbtBuilder([XPUB_A, XPUB_B, XPUB_C], 2)
    psbt = builder.signed_by(2, 0)
    finalized = finalize(psbt.to_base64())

    tx = psbt_codec.Transaction.parse(bytes.fromhex(finalized.raw_hex))
    witness = tx.inputs[0].witness
    assert witness[0] == b''
    assert witness[1] == psbt.inputs[0].partial_sigs[builder.pubkeys[0]]
    assert witness[2] == psbt.inputs[0].partial_sigs[builder.pubkeys[2]]
    assert witness[3] == builder.witness_script
    assert tx.inputs[0].outpoint == (FUNDING_TXID, 0)
    assert finalized.txid == psbt.txid
    assert tx.txid == psbt.txid


def test_finalize_uses_only_m_signatures():
    builder = PsbtBuilder([XPUB_A, XPUB_B, XPUB_C], 2)
    finalized = finalize(builder.signed_by(0, 1, 2))
    tx = psbt_codec.Transaction.parse(bytes.fromhex(finalized.raw_hex))
    assert len(tx.inputs[0].witness) == 4


def test_every_input_must_be_finalizable():
    builder = PsbtBuilder([XPUB_A, XPUB_B], 2, outpoints=[(FUNDING_TXID, 0), (FUNDING_TXID, 1)])
    psbt = builder.signed_by(0, 1)
    psbt.inputs[1].partial_sigs.pop(builder.pubkeys[1])
    with pytest.raises(FinalizationError) as exc:
        finalize(psbt)
    assert 'Input 1' in exc.value.message


def test_finalize_requires_witness_script():
    builder = PsbtBuilder([XPUB_A, XPUB_B], 1)
    psbt = builder.signed_by(0)
    psbt.inputs[0].witness_script = b''
    with pytest.raises(FinalizationError):
        finalize(psbt)


def test_finalize_leaves_original_untouched():
    builder = PsbtBuilder([XPUB_A, XPUB_B], 2)
    psbt = builder.signed_by(0, 1)
    snapshot = psbt.serialize()
    finalize(psbt)
    assert psbt.serialize() == snapshot


def test_unparseable_blob():
    with pytest.raises(FinalizationError):
        finalize('garbage')
