import logging
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor

import requests

from multisig.exceptions import BroadcastFailed, RejectedByNetwork

LOGGER = logging.getLogger(__name__)

NETWORK_ERROR = 'network_error'

EndpointResult = namedtuple('EndpointResult', ['endpoint', 'accepted', 'txid', 'error', 'kind'])
BroadcastOutcome = namedtuple('BroadcastOutcome', ['txid', 'results', 'already_broadcast'])
ChainStatus = namedtuple('ChainStatus', ['endpoint', 'seen', 'confirmed', 'block_height', 'tip_height'])

ENDPOINT_ERRORS = (requests.RequestException, ValueError, KeyError)


class Broadcaster(object):
    """
    Submits raw transactions to every broadcast endpoint at once and answers
    status questions from the lookup endpoints. A failing endpoint is recorded
    and skipped; it never fails the whole operation on its own.
    """

    def __init__(self, broadcast_endpoints, lookup_endpoints):
        self.broadcast_endpoints = list(broadcast_endpoints)
        self.lookup_endpoints = list(lookup_endpoints)

    def _submit(self, endpoint, raw_hex):
        try:
            txid = endpoint.submit(raw_hex)
        except RejectedByNetwork as exc:
            LOGGER.warning('Broadcast rejected by %s (%s): %s', endpoint.name, exc.kind, exc.reason)
            return EndpointResult(endpoint.name, False, None, exc.reason, exc.kind)
        except ENDPOINT_ERRORS as exc:
            LOGGER.warning('Broadcast to %s failed: %s', endpoint.name, exc)
            return EndpointResult(endpoint.name, False, None, str(exc), NETWORK_ERROR)
        except Exception as exc:
            LOGGER.exception('Broadcast client %s raised unexpectedly', endpoint.name)
            return EndpointResult(endpoint.name, False, None, str(exc), NETWORK_ERROR)
        LOGGER.info('Broadcast accepted by %s: %s', endpoint.name, txid)
        return EndpointResult(endpoint.name, True, txid, None, None)

    def _exists(self, endpoint, txid):
        try:
            return endpoint.exists(txid)
        except ENDPOINT_ERRORS as exc:
            LOGGER.warning('Lookup of %s on %s failed: %s', txid, endpoint.name, exc)
            return None
        except Exception:
            LOGGER.exception('Lookup client %s raised unexpectedly', endpoint.name)
            return None

    def _fan_out(self, func, endpoints, *args):
        if not endpoints:
            return []
        with ThreadPoolExecutor(max_workers=len(endpoints)) as executor:
            return list(executor.map(lambda endpoint: func(endpoint, *args), endpoints))

    def broadcast(self, raw_hex, txid):
        """
        Returns a BroadcastOutcome once every endpoint answered. When all of
        them refused but one said the transaction is already known, the
        transaction goes on to confirmation tracking; lagging lookups only
        delay its first confirmed reading.
        """
        if not self.broadcast_endpoints:
            raise BroadcastFailed([], 'No broadcast endpoints configured')

        results = self._fan_out(self._submit, self.broadcast_endpoints, raw_hex)
        if any(result.accepted for result in results):
            return BroadcastOutcome(txid=txid, results=results, already_broadcast=False)

        if any(result.kind == RejectedByNetwork.ALREADY_BROADCAST for result in results):
            LOGGER.info('Transaction %s reported as already broadcast, checking lookup endpoints', txid)
            if not self.seen(txid):
                LOGGER.warning('No lookup endpoint sees %s yet, leaving it to confirmation polling', txid)
            return BroadcastOutcome(txid=txid, results=results, already_broadcast=True)

        raise BroadcastFailed(results)

    def seen(self, txid):
        return any(self._fan_out(self._exists, self.lookup_endpoints, txid))

    def verify_independently(self, txid, broadcast_targets=None):
        """
        Counts lookup endpoints that see `txid`, ignoring every service that
        was itself a broadcast target so a submission is not echoed back as
        a confirmation.
        """
        if broadcast_targets is None:
            broadcast_targets = self.broadcast_endpoints
        target_urls = {endpoint.url for endpoint in broadcast_targets}
        independent = [endpoint for endpoint in self.lookup_endpoints if endpoint.url not in target_urls]
        sightings = self._fan_out(self._exists, independent, txid)
        count = sum(1 for seen in sightings if seen)
        LOGGER.info('Transaction %s independently seen by %s of %s services', txid, count, len(independent))
        return count

    def chain_status(self, txid):
        """
        Asks lookup endpoints in order for the inclusion height of `txid` and the
        chain tip. Returns None when no endpoint could answer.
        """
        for endpoint in self.lookup_endpoints:
            try:
                status = endpoint.status(txid)
                tip_height = endpoint.chain_tip_height() if status.confirmed else None
            except ENDPOINT_ERRORS as exc:
                LOGGER.warning('Status lookup of %s on %s failed: %s', txid, endpoint.name, exc)
                continue
            return ChainStatus(
                endpoint=endpoint.name,
                seen=status.seen,
                confirmed=status.confirmed,
                block_height=status.block_height,
                tip_height=tip_height,
            )
        return None
