import pytest
import requests

from credhub.models import LedgerTransaction
from credhub.services import ledger
from credhub.services.ledger import LedgerClient, LedgerError

HASH = 'a' * 64


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error')

    def json(self):
        return self._body


@pytest.fixture
def http_ledger(ctx, monkeypatch):
    monkeypatch.setitem(ctx.config, 'LEDGER_BACKEND', 'http')
    monkeypatch.setitem(ctx.config, 'LEDGER_NODE_URL', 'http://ledger.local/')
    return ctx


class TestLocalLedger:
    def test_anchor_then_verify(self, ctx):
        tx_id = LedgerClient.anchor({'certificateId': 1, 'issuedDate': '2024-06-01'}, HASH)

        assert tx_id.startswith('IOTA')
        record = LedgerTransaction.query.filter_by(tx_id=tx_id).one()
        assert record.payload == {'certificateId': 1, 'issuedDate': '2024-06-01'}
        assert LedgerClient.verify(tx_id, HASH) is True
        assert LedgerClient.verify(tx_id, 'b' * 64) is False

    def test_unknown_transaction(self, ctx):
        assert LedgerClient.verify('IOTANOPE', HASH) is False

    def test_blank_arguments(self, ctx):
        assert LedgerClient.verify(None, HASH) is False
        assert LedgerClient.verify('IOTA1', '') is False

    def test_unknown_backend(self, ctx, monkeypatch):
        monkeypatch.setitem(ctx.config, 'LEDGER_BACKEND', 'ethereum')
        with pytest.raises(LedgerError):
            LedgerClient.anchor({}, HASH)


class TestHttpLedger:
    def test_anchor_posts_to_node(self, http_ledger, monkeypatch):
        calls = []

        def fake_post(url, json=None, timeout=None):
            calls.append((url, json))
            return FakeResponse(body={'transactionId': 'TX123'})
        monkeypatch.setattr(ledger.requests, 'post', fake_post)

        assert LedgerClient.anchor({'certificateId': 1}, HASH) == 'TX123'
        url, body = calls[0]
        assert url == 'http://ledger.local/transactions'
        assert body == {'network': 'IOTA', 'hash': HASH, 'data': {'certificateId': 1}}

    def test_anchor_without_transaction_id(self, http_ledger, monkeypatch):
        monkeypatch.setattr(ledger.requests, 'post', lambda *a, **kw: FakeResponse(body={}))
        with pytest.raises(LedgerError):
            LedgerClient.anchor({}, HASH)

    def test_node_error_is_wrapped(self, http_ledger, monkeypatch):
        def refused(*args, **kwargs):
            raise requests.ConnectionError('refused')
        monkeypatch.setattr(ledger.requests, 'post', refused)
        with pytest.raises(LedgerError):
            LedgerClient.anchor({}, HASH)

    def test_verify_compares_hash(self, http_ledger, monkeypatch):
        monkeypatch.setattr(ledger.requests, 'get', lambda url, timeout=None: FakeResponse(body={'hash': HASH}))
        assert LedgerClient.verify('TX123', HASH) is True
        assert LedgerClient.verify('TX123', 'b' * 64) is False

    def test_verify_missing_transaction(self, http_ledger, monkeypatch):
        monkeypatch.setattr(ledger.requests, 'get', lambda url, timeout=None: FakeResponse(status_code=404))
        assert LedgerClient.verify('TX404', HASH) is False

    def test_missing_node_url(self, http_ledger, monkeypatch):
        monkeypatch.setitem(http_ledger.config, 'LEDGER_NODE_URL', None)
        with pytest.raises(LedgerError):
            LedgerClient.anchor({}, HASH)
