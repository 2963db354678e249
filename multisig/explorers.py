import logging
from collections import namedtuple

import requests

from multisig.exceptions import RejectedByNetwork

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10

TxStatus = namedtuple('TxStatus', ['seen', 'confirmed', 'block_height'])


class ExplorerClient(object):
    kind = None

    def __init__(self, name, url, timeout=DEFAULT_TIMEOUT):
        self.name = name
        self.url = url.rstrip('/')
        self.timeout = timeout

    def __repr__(self):
        return f'{self.__class__.__name__}({self.name!r}, {self.url!r})'

    def submit(self, raw_hex: str) -> str:
        raise NotImplementedError

    def exists(self, txid: str) -> bool:
        raise NotImplementedError

    def status(self, txid: str) -> TxStatus:
        raise NotImplementedError

    def chain_tip_height(self) -> int:
        raise NotImplementedError


class EsploraClient(ExplorerClient):
    """Esplora REST API, as served by mempool.space and blockstream.info."""

    kind = 'esplora'

    def submit(self, raw_hex):
        response = requests.post(f'{self.url}/tx', data=raw_hex, timeout=self.timeout)
        if response.status_code != 200:
            raise RejectedByNetwork(self.name, response.text)
        return response.text.strip()

    def exists(self, txid):
        response = requests.get(f'{self.url}/tx/{txid}', timeout=self.timeout)
        if response.status_code == 404:
            return False
        response.raise_for_status()
        return True

    def status(self, txid):
        response = requests.get(f'{self.url}/tx/{txid}/status', timeout=self.timeout)
        if response.status_code == 404:
            return TxStatus(seen=False, confirmed=False, block_height=None)
        response.raise_for_status()
        data = response.json()
        confirmed = bool(data.get('confirmed'))
        return TxStatus(
            seen=True,
            confirmed=confirmed,
            block_height=data.get('block_height') if confirmed else None,
        )

    def chain_tip_height(self):
        response = requests.get(f'{self.url}/blocks/tip/height', timeout=self.timeout)
        response.raise_for_status()
        return int(response.text.strip())


class BlockCypherClient(ExplorerClient):
    """BlockCypher chain API, e.g. https://api.blockcypher.com/v1/btc/main"""

    kind = 'blockcypher'

    def submit(self, raw_hex):
        response = requests.post(f'{self.url}/txs/push', json={'tx': raw_hex}, timeout=self.timeout)
        if response.status_code not in (200, 201):
            try:
                reason = response.json().get('error', response.text)
            except ValueError:
                reason = response.text
            raise RejectedByNetwork(self.name, reason)
        return response.json()['tx']['hash']

    def exists(self, txid):
        response = requests.get(f'{self.url}/txs/{txid}', timeout=self.timeout)
        if response.status_code == 404:
            return False
        response.raise_for_status()
        return True

    def status(self, txid):
        response = requests.get(f'{self.url}/txs/{txid}', timeout=self.timeout)
        if response.status_code == 404:
            return TxStatus(seen=False, confirmed=False, block_height=None)
        response.raise_for_status()
        block_height = response.json().get('block_height', -1)
        if block_height is None or block_height < 0:
            return TxStatus(seen=True, confirmed=False, block_height=None)
        return TxStatus(seen=True, confirmed=True, block_height=block_height)

    def chain_tip_height(self):
        response = requests.get(self.url, timeout=self.timeout)
        response.raise_for_status()
        return int(response.json()['height'])


CLIENT_KINDS = {
    EsploraClient.kind: EsploraClient,
    BlockCypherClient.kind: BlockCypherClient,
}


def build_clients(configs, timeout=DEFAULT_TIMEOUT):
    """Instantiates clients from settings entries of the form {name, kind, url}."""
    clients = []
    for config in configs:
        try:
            client_class = CLIENT_KINDS[config.get('kind', EsploraClient.kind)]
        except KeyError:
            raise ValueError(f'Unknown explorer kind "{config.get("kind")}"')
        clients.append(client_class(config['name'], config['url'], timeout=config.get('timeout', timeout)))
    return clients
