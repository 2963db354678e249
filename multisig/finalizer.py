import logging
from collections import namedtuple

from multisig import psbt as psbt_codec
from multisig.exceptions import FinalizationError, ParseError
from multisig.script import parse_multisig

LOGGER = logging.getLogger(__name__)

FinalizedTransaction = namedtuple('FinalizedTransaction', ['raw_hex', 'txid', 'psbt'])


def finalize_input(index, psbt_in):
    """Builds the P2WSH multisig witness for one input from its partial signatures."""
    if psbt_in.is_final:
        return

    if not psbt_in.witness_script:
        raise FinalizationError(f'Input {index} has no witness script')
    try:
        multisig = parse_multisig(psbt_in.witness_script)
    except ParseError:
        raise FinalizationError(f'Input {index} witness script is not a multisig script')

    # CHECKMULTISIG consumes signatures in script key order
    signatures = [
        psbt_in.partial_sigs[pubkey]
        for pubkey in multisig.pubkeys
        if pubkey in psbt_in.partial_sigs
    ][:multisig.m]
    if len(signatures) < multisig.m:
        raise FinalizationError(
            f'Input {index} has {len(signatures)} of {multisig.m} required signatures'
        )

    psbt_in.final_script_witness = [b''] + signatures + [psbt_in.witness_script]
    psbt_in.partial_sigs = {}
    psbt_in.sighash = None
    psbt_in.redeem_script = b''
    psbt_in.witness_script = b''
    psbt_in.bip32_derivations = {}


def finalize(psbt_blob) -> FinalizedTransaction:
    """
    Finalizes every input and extracts the network-ready transaction.

    Fails with FinalizationError when any input lacks enough signatures.
    The original blob is never modified.
    """
    try:
        psbt = psbt_codec.decode(psbt_blob).copy()
    except ParseError:
        raise FinalizationError('PSBT could not be parsed')

    for index, psbt_in in enumerate(psbt.inputs):
        finalize_input(index, psbt_in)

    tx = psbt_codec.Transaction(
        version=psbt.tx.version,
        inputs=[
            psbt_codec.TxIn(
                prev_txid=tx_in.prev_txid,
                vout=tx_in.vout,
                script_sig=psbt_in.final_script_sig,
                sequence=tx_in.sequence,
                witness=psbt_in.final_script_witness,
            )
            for tx_in, psbt_in in zip(psbt.tx.inputs, psbt.inputs)
        ],
        outputs=psbt.tx.outputs,
        locktime=psbt.tx.locktime,
    )
    LOGGER.info('Finalized transaction %s', tx.txid)
    return FinalizedTransaction(raw_hex=tx.to_hex(), txid=tx.txid, psbt=psbt)
