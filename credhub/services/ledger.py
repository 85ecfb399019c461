import json
import logging
import secrets

import requests
from flask import current_app

from credhub.models import db, LedgerTransaction

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    pass


class LedgerClient:
    """
    Anchors certificate hashes in an append-only ledger.

    The `local` backend keeps transactions in the ledger_transactions table,
    the `http` backend posts them to a ledger node at LEDGER_NODE_URL.
    """

    @staticmethod
    def anchor(payload: dict, payload_hash: str) -> str:
        backend = current_app.config.get('LEDGER_BACKEND', 'local')
        network = current_app.config.get('LEDGER_NETWORK', 'IOTA')
        logger.info(f"Anchoring hash {payload_hash[:10]}... on {network} ({backend})")

        if backend == 'http':
            body = LedgerClient._post('/transactions', {
                'network': network,
                'hash': payload_hash,
                'data': payload,
            })
            tx_id = body.get('transactionId')
            if not tx_id:
                raise LedgerError("Ledger node returned no transaction id")
            return tx_id

        if backend != 'local':
            raise LedgerError(f"Unknown ledger backend: {backend}")

        tx_id = f"{network}{secrets.token_hex(30)}".upper()
        db.session.add(LedgerTransaction(
            tx_id=tx_id,
            network=network,
            payload_hash=payload_hash,
            payload=json.loads(json.dumps(payload, default=str)),
        ))
        db.session.flush()
        return tx_id

    @staticmethod
    def verify(tx_id: str, payload_hash: str) -> bool:
        if not tx_id or not payload_hash:
            return False

        backend = current_app.config.get('LEDGER_BACKEND', 'local')
        if backend == 'http':
            body = LedgerClient._get(f'/transactions/{tx_id}')
            verified = body.get('hash') == payload_hash
        else:
            record = LedgerTransaction.query.filter_by(tx_id=tx_id).first()
            if record is None:
                logger.info(f"Transaction ID {tx_id} not found in ledger")
                return False
            verified = record.payload_hash == payload_hash

        logger.info(f"Ledger verification {'successful' if verified else 'failed'} for txId: {tx_id}")
        return verified

    @staticmethod
    def _node_url(path):
        base = current_app.config.get('LEDGER_NODE_URL')
        if not base:
            raise LedgerError("LEDGER_NODE_URL is not set")
        return base.rstrip('/') + path

    @staticmethod
    def _post(path, body):
        try:
            resp = requests.post(LedgerClient._node_url(path), json=body, timeout=5)
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            raise LedgerError(f"Failed to create ledger transaction: {e}") from e

    @staticmethod
    def _get(path):
        try:
            resp = requests.get(LedgerClient._node_url(path), timeout=5)
            if resp.status_code == 404:
                return {}
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            raise LedgerError(f"Failed to read ledger transaction: {e}") from e
