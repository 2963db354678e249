from django.test import TestCase
from rest_framework import status
import requests_mock

from .context import MultisigContext, set_context
from .models import Descriptor, ExtendedKey, PsbtRecord
from tests.multisig.objects.obj_explorers import BLOCKSTREAM_URL, MEMPOOL_URL, ExplorerMock
from tests.multisig.objects.obj_keys import XPRV_A, XPUB_A, XPUB_B, XPUB_C
from tests.multisig.objects.obj_psbt import OTHER_FUNDING_TXID, PsbtBuilder


class MultisigApiTestCase(TestCase):
    session = 'api-session'

    def setUp(self):
        self.context = MultisigContext()
        self.previous_context = set_context(self.context)

    def tearDown(self):
        set_context(self.previous_context)
        self.context.teardown()

    def get(self, url, **kwargs):
        return self.client.get(url, HTTP_X_SESSION_ID=self.session, **kwargs)

    def post(self, url, data):
        return self.client.post(url, data=data, content_type='application/json', HTTP_X_SESSION_ID=self.session)

    def put(self, url, data):
        return self.client.put(url, data=data, content_type='application/json', HTTP_X_SESSION_ID=self.session)

    def patch(self, url, data):
        return self.client.patch(url, data=data, content_type='application/json', HTTP_X_SESSION_ID=self.session)

    def delete(self, url):
        return self.client.delete(url, HTTP_X_SESSION_ID=self.session)

    def register(self, label, xpub):
        response = self.post('/multisig/xpubs/', {'label': label, 'xpub': xpub})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        return response.json()['id']


class XpubApiTests(MultisigApiTestCase):

    def test_register_list_and_rename(self):
        alice = self.register('Alice', XPUB_A)
        self.register('Bob', XPUB_B)

        response = self.get('/multisig/xpubs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([key['label'] for key in response.json()], ['Bob', 'Alice'])

        response = self.put(f'/multisig/xpubs/{alice}/', {'label': 'Alice (cold)'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()['label'], 'Alice (cold)')
        self.assertEqual(response.json()['xpub'], XPUB_A)

    def test_duplicate_and_invalid_keys(self):
        self.register('Alice', XPUB_A)
        response = self.post('/multisig/xpubs/', {'label': 'Again', 'xpub': XPUB_A})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.json(), {'error': 'This xpub already exists in this session'})

        response = self.post('/multisig/xpubs/', {'label': 'Mallory', 'xpub': XPRV_A})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Private extended keys', response.json()['error'])

        response = self.post('/multisig/xpubs/', {'label': 'Nobody'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_sessions_are_isolated(self):
        alice = self.register('Alice', XPUB_A)
        response = self.client.get('/multisig/xpubs/?session=other')
        self.assertEqual(response.json(), [])
        response = self.client.get(f'/multisig/xpubs/{alice}/', HTTP_X_SESSION_ID='other')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json(), {'error': 'XPub not found'})

    def test_delete(self):
        alice = self.register('Alice', XPUB_A)
        self.assertEqual(self.delete(f'/multisig/xpubs/{alice}/').status_code, status.HTTP_200_OK)
        self.assertEqual(self.delete(f'/multisig/xpubs/{alice}/').status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(ExtendedKey.objects.exists())


class AddressAndDescriptorApiTests(MultisigApiTestCase):

    def setUp(self):
        super().setUp()
        self.key_ids = [self.register('Alice', XPUB_A), self.register('Bob', XPUB_B), self.register('Carol', XPUB_C)]

    def test_derive_addresses(self):
        response = self.post('/multisig/addresses/', {'xpub_ids': self.key_ids, 'm': 2, 'n': 3, 'count': 3})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual([address['index'] for address in data['addresses']], [0, 1, 2])
        self.assertTrue(all(address['address'].startswith('bc1q') for address in data['addresses']))
        self.assertTrue(data['descriptor'].startswith('wsh(sortedmulti(2,'))
        self.assertEqual(len(data['addresses'][0]['pubkeys']), 3)

    def test_configuration_errors(self):
        response = self.post('/multisig/addresses/', {'xpub_ids': self.key_ids[:2], 'm': 2, 'n': 3})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json(), {'error': 'Please select exactly 3 xpubs'})

        response = self.post('/multisig/addresses/', {'xpub_ids': self.key_ids, 'm': 4, 'n': 3})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json(), {'error': 'M cannot be greater than N'})

    def test_descriptor_lifecycle(self):
        response = self.post('/multisig/descriptors/', {'name': 'vault', 'xpub_ids': self.key_ids, 'm': 2})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        descriptor_id = response.json()['id']
        self.assertTrue(response.json()['first_address'].startswith('bc1q'))

        response = self.get('/multisig/descriptors/')
        self.assertEqual([descriptor['id'] for descriptor in response.json()], [descriptor_id])

        self.assertEqual(self.delete(f'/multisig/descriptors/{descriptor_id}/').status_code, status.HTTP_200_OK)
        self.assertFalse(Descriptor.objects.exists())
        # deleting keys never touches descriptors or psbts
        self.assertEqual(self.delete(f'/multisig/xpubs/{self.key_ids[0]}/').status_code, status.HTTP_200_OK)


class PsbtApiTests(MultisigApiTestCase):

    def setUp(self):
        super().setUp()
        self.builder = PsbtBuilder([XPUB_A, XPUB_B], 2)

    def upload(self, psbt, name='rent', **extra):
        return self.post('/multisig/psbts/', dict(name=name, psbt=psbt, **extra))

    def test_upload_then_merge(self):
        response = self.upload(self.builder.signed_by(0).to_base64(), signatures_count=2)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.json()
        self.assertEqual(data['outcome'], 'created')
        self.assertEqual(data['signatures_count'], 1)
        self.assertEqual(data['status'], 'pending')

        response = self.upload(self.builder.signed_by(1).to_hex())
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual(data['outcome'], 'merged')
        self.assertEqual(data['signatures_count'], 2)
        self.assertEqual(data['status'], 'ready')
        self.assertEqual(PsbtRecord.objects.count(), 1)

    def test_unrelated_upload_is_separate(self):
        self.upload(self.builder.signed_by(0).to_base64())
        other = PsbtBuilder([XPUB_A, XPUB_B], 2, outpoints=[(OTHER_FUNDING_TXID, 0)])
        response = self.upload(other.signed_by(0).to_base64(), name='other')
        self.assertEqual(response.json()['outcome'], 'created')
        self.assertEqual(len(self.get('/multisig/psbts/').json()), 2)

    def test_invalid_psbt(self):
        response = self.upload('bm90IGEgcHNidA==')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json(), {'error': 'Invalid PSBT format. Use base64 or hex encoding.'})

    def test_put_merges_and_rejects_other_transactions(self):
        record_id = self.upload(self.builder.signed_by(0).to_base64()).json()['id']
        other = PsbtBuilder([XPUB_A, XPUB_B], 2, outpoints=[(OTHER_FUNDING_TXID, 0)])

        response = self.put(f'/multisig/psbts/{record_id}/', {'psbt': other.signed_by(1).to_base64()})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.put(f'/multisig/psbts/{record_id}/', {'psbt': self.builder.signed_by(1).to_base64()})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()['signatures_count'], 2)

    def test_notes_signers_and_delete(self):
        alice = self.register('Alice', XPUB_A)
        record_id = self.upload(self.builder.signed_by(0).to_base64()).json()['id']

        response = self.patch(f'/multisig/psbts/{record_id}/notes/', {'notes': 'March rent'})
        self.assertEqual(response.json()['notes'], 'March rent')

        response = self.get(f'/multisig/psbts/{record_id}/signers/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual((data['m'], data['n'], data['signatures_count']), (2, 2, 1))
        matched = [signer for signer in data['signers'] if signer['match']]
        self.assertEqual([signer['match']['key_id'] for signer in matched], [alice])
        self.assertEqual(matched[0]['match']['path'], '0/0')

        self.assertEqual(self.delete(f'/multisig/psbts/{record_id}/').status_code, status.HTTP_200_OK)
        self.assertEqual(self.get(f'/multisig/psbts/{record_id}/').status_code, status.HTTP_404_NOT_FOUND)

    def test_inspect_without_storing(self):
        response = self.post('/multisig/psbts/inspect/', {'psbt': self.builder.signed_by(0, 1).to_base64()})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.json()['is_complete'])
        self.assertEqual(response.json()['fee'], 1000)
        self.assertFalse(PsbtRecord.objects.exists())

    def test_broadcast_needs_signatures(self):
        record_id = self.upload(self.builder.signed_by(0).to_base64()).json()['id']
        response = self.post(f'/multisig/psbts/{record_id}/broadcast/', {})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json(), {'error': 'PSBT has 1 of 2 required signatures'})

    def test_broadcast(self):
        with requests_mock.Mocker() as mocker:
            explorers = ExplorerMock(mocker)
            self.context.broadcaster = explorers.broadcaster()
            self.context.tracker.broadcaster = self.context.broadcaster

            psbt = self.builder.signed_by(0, 1)
            record_id = self.upload(psbt.to_base64()).json()['id']
            explorers.accept(MEMPOOL_URL, psbt.txid)
            explorers.accept(BLOCKSTREAM_URL, psbt.txid)

            response = self.post(f'/multisig/psbts/{record_id}/broadcast/', {})
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            data = response.json()
            self.assertEqual(data['txid'], psbt.txid)
            self.assertEqual(data['status'], 'broadcast')
            self.assertEqual(len(data['results']), 2)

    def test_broadcast_failure_lists_endpoints(self):
        with requests_mock.Mocker() as mocker:
            explorers = ExplorerMock(mocker)
            self.context.broadcaster = explorers.broadcaster()
            self.context.tracker.broadcaster = self.context.broadcaster

            psbt = self.builder.signed_by(0, 1)
            record_id = self.upload(psbt.to_base64()).json()['id']
            explorers.reject(MEMPOOL_URL, 'min relay fee not met')
            explorers.reject(BLOCKSTREAM_URL, 'min relay fee not met')

            response = self.post(f'/multisig/psbts/{record_id}/broadcast/', {})
            self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
            kinds = {result['endpoint']: result['kind'] for result in response.json()['results']}
            self.assertEqual(kinds, {'mempool': 'fee_policy', 'blockstream': 'fee_policy'})
            self.assertIsNone(PsbtRecord.objects.get(id=record_id).txid)
