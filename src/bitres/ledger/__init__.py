"""Ledger layer -- contract reads and writes via web3.py."""

from bitres.ledger.client import LedgerClient
from bitres.ledger.snapshot import SnapshotReader, build_pool_registry
from bitres.ledger.web3_client import Web3LedgerClient

__all__ = ["LedgerClient", "SnapshotReader", "Web3LedgerClient", "build_pool_registry"]
