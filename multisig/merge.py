import logging
from collections import namedtuple

from multisig import psbt as psbt_codec
from multisig.exceptions import NotEquivalent
from multisig.inspector import count_signatures

LOGGER = logging.getLogger(__name__)

MergeResult = namedtuple('MergeResult', ['psbt', 'signatures_count', 'added_signatures'])


def outpoint_set(psbt):
    return sorted(psbt.outpoints())


def equivalent(a, b) -> bool:
    """Two PSBTs are the same transaction when they spend the same outpoints."""
    return outpoint_set(psbt_codec.decode(a)) == outpoint_set(psbt_codec.decode(b))


def _merge_input(target, source):
    added = 0
    for pubkey, signature in source.partial_sigs.items():
        if pubkey not in target.partial_sigs:
            target.partial_sigs[pubkey] = signature
            added += 1

    if target.non_witness_utxo is None:
        target.non_witness_utxo = source.non_witness_utxo
    if target.witness_utxo is None:
        target.witness_utxo = source.witness_utxo
    if target.sighash is None:
        target.sighash = source.sighash
    if not target.redeem_script:
        target.redeem_script = source.redeem_script
    if not target.witness_script:
        target.witness_script = source.witness_script
    if not target.final_script_sig:
        target.final_script_sig = source.final_script_sig
    if not target.final_script_witness:
        target.final_script_witness = list(source.final_script_witness)
    for pubkey, origin in source.bip32_derivations.items():
        target.bip32_derivations.setdefault(pubkey, origin)
    for key, value in source.unknown.items():
        target.unknown.setdefault(key, value)
    return added


def merge(existing, incoming) -> MergeResult:
    """
    Unions the partial signatures of two copies of the same transaction.

    Signatures are keyed by public key, so a signature already present in
    `existing` is never replaced or duplicated. Raises NotEquivalent when the
    two PSBTs spend different outpoints.
    """
    base = psbt_codec.decode(existing).copy()
    other = psbt_codec.decode(incoming)
    if outpoint_set(base) != outpoint_set(other):
        raise NotEquivalent()

    incoming_inputs = {
        tx_in.outpoint: psbt_in
        for tx_in, psbt_in in zip(other.tx.inputs, other.inputs)
    }
    added = 0
    for tx_in, psbt_in in zip(base.tx.inputs, base.inputs):
        added += _merge_input(psbt_in, incoming_inputs[tx_in.outpoint])

    if len(base.outputs) == len(other.outputs):
        for target, source in zip(base.outputs, other.outputs):
            for key, value in source.unknown.items():
                target.unknown.setdefault(key, value)
    for key, value in other.unknown.items():
        base.unknown.setdefault(key, value)

    LOGGER.debug('Merged PSBT %s, %s new signature(s)', base.txid, added)
    return MergeResult(psbt=base, signatures_count=count_signatures(base), added_signatures=added)
