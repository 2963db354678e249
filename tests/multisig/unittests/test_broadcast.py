import pytest
import requests

from multisig.broadcast import NETWORK_ERROR, Broadcaster
from multisig.exceptions import BroadcastFailed, RejectedByNetwork
from multisig.explorers import ExplorerClient
from tests.multisig.objects.obj_explorers import (
    BLOCKCYPHER_URL,
    BLOCKSTREAM_URL,
    MEMPOOL_URL,
    ExplorerMock,
)

TXID = 'f4184fc596403b9d638783cf57adfe4c75c605f6356fbc91338530e9831e9e16'
RAW_TX = '0200000001' + '00' * 40


class BrokenClient(ExplorerClient):

    def submit(self, raw_hex):
        raise RuntimeError('unexpected payload')

    def exists(self, txid):
        raise RuntimeError('unexpected payload')


def test_rejection_reasons_are_classified():
    assert RejectedByNetwork('x', 'sendrawtransaction RPC error: {"code":-27,"message":"Transaction already in block chain"}').kind == \
        RejectedByNetwork.ALREADY_BROADCAST
    assert RejectedByNetwork('x', 'txn-mempool-conflict').kind == RejectedByNetwork.DOUBLE_SPEND
    assert RejectedByNetwork('x', 'bad-txns-inputs-missingorspent').kind == RejectedByNetwork.DOUBLE_SPEND
    assert RejectedByNetwork('x', 'min relay fee not met, 100 < 141').kind == RejectedByNetwork.FEE_POLICY
    assert RejectedByNetwork('x', 'non-mandatory-script-verify-flag').kind == RejectedByNetwork.OTHER


def test_broadcast_succeeds_when_one_endpoint_accepts(requests_mock):
    explorers = ExplorerMock(requests_mock)
    explorers.accept(MEMPOOL_URL, TXID)
    requests_mock.post(f'{BLOCKSTREAM_URL}/tx', exc=requests.exceptions.ConnectTimeout)

    outcome = explorers.broadcaster().broadcast(RAW_TX, TXID)
    assert outcome.txid == TXID
    assert outcome.already_broadcast is False
    results = {result.endpoint: result for result in outcome.results}
    assert results['mempool'].accepted is True
    assert results['blockstream'].accepted is False
    assert results['blockstream'].kind == 'network_error'


def test_already_broadcast_checks_lookup_endpoints(requests_mock):
    explorers = ExplorerMock(requests_mock)
    explorers.reject(MEMPOOL_URL, 'Transaction already in block chain')
    explorers.reject(BLOCKSTREAM_URL, 'txn-already-known')
    explorers.known(MEMPOOL_URL, TXID, seen=False)
    explorers.known(BLOCKSTREAM_URL, TXID, seen=False)
    explorers.blockcypher_known(TXID, seen=True, block_height=800000)

    outcome = explorers.broadcaster().broadcast(RAW_TX, TXID)
    assert outcome.already_broadcast is True
    assert all(not result.accepted for result in outcome.results)
    assert any(request.method == 'GET' for request in requests_mock.request_history)


def test_already_broadcast_with_lagging_lookups_is_not_a_failure(requests_mock):
    explorers = ExplorerMock(requests_mock)
    explorers.reject(MEMPOOL_URL, 'Transaction already in block chain')
    explorers.reject(BLOCKSTREAM_URL, 'Transaction already in block chain')
    requests_mock.get(f'{MEMPOOL_URL}/tx/{TXID}', exc=requests.exceptions.ReadTimeout)
    requests_mock.get(f'{BLOCKSTREAM_URL}/tx/{TXID}', exc=requests.exceptions.ReadTimeout)
    explorers.blockcypher_known(TXID, seen=False)

    outcome = explorers.broadcaster().broadcast(RAW_TX, TXID)
    assert outcome.txid == TXID
    assert outcome.already_broadcast is True
    assert {result.kind for result in outcome.results} == {RejectedByNetwork.ALREADY_BROADCAST}


def test_misbehaving_client_does_not_sink_the_broadcast(requests_mock):
    explorers = ExplorerMock(requests_mock)
    explorers.accept(MEMPOOL_URL, TXID)
    broken = BrokenClient('broken', 'https://broken.example/api')
    broadcaster = Broadcaster([explorers.mempool, broken], [broken, explorers.mempool])

    outcome = broadcaster.broadcast(RAW_TX, TXID)
    results = {result.endpoint: result for result in outcome.results}
    assert results['mempool'].accepted is True
    assert results['broken'].accepted is False
    assert results['broken'].kind == NETWORK_ERROR

    explorers.known(MEMPOOL_URL, TXID)
    assert broadcaster.seen(TXID) is True


def test_all_endpoints_failing_reports_each_one(requests_mock):
    explorers = ExplorerMock(requests_mock)
    explorers.reject(MEMPOOL_URL, 'min relay fee not met')
    explorers.reject(BLOCKSTREAM_URL, 'bad-txns-inputs-missingorspent')

    with pytest.raises(BroadcastFailed) as exc:
        explorers.broadcaster().broadcast(RAW_TX, TXID)
    kinds = {result.endpoint: result.kind for result in exc.value.results}
    assert kinds == {'mempool': 'fee_policy', 'blockstream': 'double_spend'}
    # no lookup was attempted
    assert all(request.method == 'POST' for request in requests_mock.request_history)


def test_independent_verification_skips_broadcast_targets(requests_mock):
    explorers = ExplorerMock(requests_mock)
    explorers.known(MEMPOOL_URL, TXID)
    explorers.known(BLOCKSTREAM_URL, TXID)
    explorers.blockcypher_known(TXID)
    broadcaster = explorers.broadcaster()

    assert broadcaster.verify_independently(TXID) == 1
    assert broadcaster.verify_independently(TXID, broadcast_targets=[explorers.mempool]) == 2
    assert broadcaster.verify_independently(TXID, broadcast_targets=[]) == 3
    urls = {request.url.split('/tx')[0] for request in requests_mock.request_history}
    assert urls == {MEMPOOL_URL, BLOCKSTREAM_URL, BLOCKCYPHER_URL}


def test_lookup_errors_count_as_not_seen(requests_mock):
    explorers = ExplorerMock(requests_mock)
    requests_mock.get(f'{BLOCKCYPHER_URL}/txs/{TXID}', status_code=500)
    assert explorers.broadcaster().verify_independently(TXID) == 0


def test_chain_status_falls_through_failing_endpoints(requests_mock):
    explorers = ExplorerMock(requests_mock)
    explorers.status_unavailable(MEMPOOL_URL, TXID)
    explorers.status(BLOCKSTREAM_URL, TXID, block_height=800000, tip_height=800002)

    status = explorers.broadcaster().chain_status(TXID)
    assert status.endpoint == 'blockstream'
    assert status.confirmed is True
    assert status.block_height == 800000
    assert status.tip_height == 800002


def test_chain_status_unknown(requests_mock):
    explorers = ExplorerMock(requests_mock)
    explorers.status_unavailable(MEMPOOL_URL, TXID)
    explorers.status_unavailable(BLOCKSTREAM_URL, TXID)
    requests_mock.get(f'{BLOCKCYPHER_URL}/txs/{TXID}', exc=requests.exceptions.ReadTimeout)
    assert explorers.broadcaster().chain_status(TXID) is None
