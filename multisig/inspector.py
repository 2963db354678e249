import logging
from collections import namedtuple

from multisig import psbt as psbt_codec
from multisig.derivation import address_from_script_pubkey
from multisig.exceptions import ParseError
from multisig.registry import DEFAULT_GAP_LIMIT, match_key
from multisig.script import parse_multisig

LOGGER = logging.getLogger(__name__)

SignatureInfo = namedtuple('SignatureInfo', [
    'txid',
    'm',
    'n',
    'signatures_count',
    'is_complete',
    'signers',
    'input_signatures',
    'inputs',
    'outputs',
    'fee',
    'psbt',
])

SignerStatus = namedtuple('SignerStatus', ['pubkey', 'has_signed', 'match'])
InputSummary = namedtuple('InputSummary', ['txid', 'vout', 'value', 'signatures'])
OutputSummary = namedtuple('OutputSummary', ['address', 'value'])


def count_signatures(psbt) -> int:
    """Largest partial signature count found on any single input."""
    return max((len(psbt_in.partial_sigs) for psbt_in in psbt.inputs), default=0)


def multisig_script(psbt_in):
    script = psbt_in.script
    if not script:
        return None
    try:
        return parse_multisig(script)
    except ParseError:
        LOGGER.debug('Input script is not a multisig script: %s', script.hex())
        return None


def authoritative_script(psbt):
    """The first input's multisig script, which names the signer set."""
    for psbt_in in psbt.inputs:
        multisig = multisig_script(psbt_in)
        if multisig is not None:
            return psbt_in, multisig
    return None, None


def input_value(psbt_in, tx_in):
    if psbt_in.witness_utxo is not None:
        return psbt_in.witness_utxo.value
    if psbt_in.non_witness_utxo:
        try:
            prev_tx = psbt_codec.Transaction.parse(psbt_in.non_witness_utxo)
            return prev_tx.outputs[tx_in.vout].value
        except (ParseError, IndexError):
            return None
    return None


def inspect(psbt_blob, registry=None, network=None):
    """
    Parses `psbt_blob` (base64, hex, bytes or a decoded Psbt) and reports its
    M-of-N, the signature count and per-key signer status, matching each
    script key against `registry` when one is given.
    """
    psbt = psbt_codec.decode(psbt_blob)
    if network is None:
        network = getattr(registry, 'network', 'mainnet')
    gap_limit = getattr(registry, 'gap_limit', DEFAULT_GAP_LIMIT)
    keys = registry.list() if registry is not None else []

    signatures_count = count_signatures(psbt)
    first_input, multisig = authoritative_script(psbt)

    signers = []
    m = n = None
    if multisig is not None:
        m, n = multisig.m, multisig.n
        for pubkey in multisig.pubkeys:
            signers.append(SignerStatus(
                pubkey=pubkey.hex(),
                has_signed=pubkey in first_input.partial_sigs,
                match=match_key(pubkey, keys, network=network, gap_limit=gap_limit) if keys else None,
            ))

    inputs = []
    for psbt_in, tx_in in zip(psbt.inputs, psbt.tx.inputs):
        txid, vout = tx_in.outpoint
        inputs.append(InputSummary(
            txid=txid,
            vout=vout,
            value=input_value(psbt_in, tx_in),
            signatures=len(psbt_in.partial_sigs),
        ))

    outputs = [
        OutputSummary(address=address_from_script_pubkey(tx_out.script_pubkey, network), value=tx_out.value)
        for tx_out in psbt.tx.outputs
    ]

    fee = None
    if inputs and all(summary.value is not None for summary in inputs):
        fee = sum(summary.value for summary in inputs) - sum(summary.value for summary in outputs)

    return SignatureInfo(
        txid=psbt.txid,
        m=m,
        n=n,
        signatures_count=signatures_count,
        is_complete=m is not None and signatures_count >= m,
        signers=signers,
        input_signatures=[summary.signatures for summary in inputs],
        inputs=inputs,
        outputs=outputs,
        fee=fee,
        psbt=psbt,
    )
