import pytest

from multisig.inspector import count_signatures, inspect
from multisig.registry import KeyRegistry
from multisig.stores import KeyStore
from multisig import psbt as psbt_codec
from tests.multisig.objects.obj_keys import XPUB_A, XPUB_B, XPUB_C
from tests.multisig.objects.obj_psbt import (
    FUNDING_TXID,
    OTHER_FUNDING_TXID,
    PsbtBuilder,
    dummy_signature,
)


def test_inspect_reports_m_of_n_and_signers():
    builder = PsbtBuilder([XPUB_A, XPUB_B, XPUB_C], 2)
    info = inspect(builder.signed_by(1).to_base64())
    assert (info.m, info.n) == (2, 3)
    assert info.signatures_count == 1
    assert info.is_complete is False
    assert [signer.pubkey for signer in info.signers] == [pubkey.hex() for pubkey in builder.pubkeys]
    assert [signer.has_signed for signer in info.signers] == [False, True, False]
    assert all(signer.match is None for signer in info.signers)


def test_inspect_summarizes_inputs_outputs_and_fee():
    builder = PsbtBuilder([XPUB_A, XPUB_B], 2, outpoints=[(FUNDING_TXID, 0), (OTHER_FUNDING_TXID, 3)], fee=1500)
    info = inspect(builder.unsigned().to_hex())
    assert [(summary.txid, summary.vout) for summary in info.inputs] == [(FUNDING_TXID, 0), (OTHER_FUNDING_TXID, 3)]
    assert info.fee == 1500
    assert info.outputs[0].address == 'bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4'
    assert info.txid == builder.unsigned().txid


def test_all_of_n_boundary():
    builder = PsbtBuilder([XPUB_A, XPUB_B, XPUB_C], 3)
    assert inspect(builder.signed_by(0, 1)).is_complete is False
    assert inspect(builder.signed_by(0, 1, 2)).is_complete is True


def test_count_is_max_over_inputs():
    builder = PsbtBuilder([XPUB_A, XPUB_B], 2, outpoints=[(FUNDING_TXID, 0), (FUNDING_TXID, 1)])
    psbt = builder.unsigned()
    pubkey = builder.pubkeys[0]
    psbt.inputs[1].partial_sigs[pubkey] = dummy_signature(pubkey)
    info = inspect(psbt)
    assert count_signatures(psbt) == 1
    assert info.input_signatures == [0, 1]
    # signer status comes from the first input only
    assert not any(signer.has_signed for signer in info.signers)


def test_psbt_without_multisig_script():
    builder = PsbtBuilder([XPUB_A, XPUB_B], 2)
    psbt = builder.unsigned()
    for psbt_in in psbt.inputs:
        psbt_in.witness_script = b''
    info = inspect(psbt)
    assert info.m is None and info.n is None
    assert info.signers == []
    assert info.is_complete is False


def test_pushed_number_thresholds():
    builder = PsbtBuilder([XPUB_A, XPUB_B], 2)
    psbt = builder.signed_by(0, 1)
    script = bytearray(builder.witness_script)
    # OP_2 ... OP_2 rewritten as pushes of the script number 2
    pushed = b'\x01\x02' + bytes(script[1:-2]) + b'\x01\x02' + bytes(script[-1:])
    psbt.inputs[0].witness_script = pushed
    info = inspect(psbt_codec.decode(psbt.to_base64()))
    assert (info.m, info.n) == (2, 2)
    assert info.is_complete is True


@pytest.mark.django_db
def test_signers_are_matched_against_registry():
    registry = KeyRegistry('0', KeyStore(), gap_limit=5)
    alice = registry.register('Alice', XPUB_A)
    registry.register('Bob', XPUB_B)

    builder = PsbtBuilder([XPUB_A, XPUB_B, XPUB_C], 2, index=3)
    info = inspect(builder.signed_by(0), registry=registry)
    matches = {signer.pubkey: signer.match for signer in info.signers}
    labels = sorted(match.label for match in matches.values() if match is not None)
    assert labels == ['Alice', 'Bob']
    alice_match = [match for match in matches.values() if match and match.key_id == alice.id][0]
    assert alice_match.path == '0/3'
    assert sum(1 for match in matches.values() if match is None) == 1
