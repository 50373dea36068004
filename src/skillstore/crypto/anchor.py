"""Blockchain anchoring: embeds the event-log Merkle root on Ethereum.

Anchoring places the root hash of the ledger's audit trail into a
zero-value transaction, creating a timestamped, publicly verifiable
proof that the event log existed in that exact form at that moment.
No code executes on-chain; the chain is only a witness.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from skillstore.crypto.merkle import MerkleTree
from skillstore.persistence.event_log import EventLog

logger = logging.getLogger(__name__)

SEPOLIA_CHAIN_ID = 11155111


@dataclass(frozen=True)
class AnchorRecord:
    """A record of a successful blockchain anchor."""
    merkle_root: str
    event_count: int
    tx_hash: str
    block_number: int
    chain_id: int
    timestamp_utc: str
    explorer_url: str


def event_log_root(event_log: EventLog) -> str:
    """Merkle root over every event hash in the log."""
    return MerkleTree.from_leaves(event_log.event_hashes()).compute_root()


def anchor_to_chain(
    digest: str,
    rpc_url: str,
    private_key: str,
    chain_id: int = SEPOLIA_CHAIN_ID,
    gas: int = 30_000,
    gas_price_gwei: str = "2",
) -> tuple[str, int]:
    """Send a 0-ETH self-send carrying digest in the data field.

    Waits for 1 confirmation. Returns (tx_hash hex, block number).
    """
    from web3 import Web3, HTTPProvider
    from eth_account import Account

    w3 = Web3(HTTPProvider(rpc_url))
    acct = Account.from_key(private_key)

    nonce = w3.eth.get_transaction_count(acct.address)
    tx = {
        "to": acct.address,
        "value": 0,
        "gas": gas,
        "gasPrice": w3.to_wei(gas_price_gwei, "gwei"),
        "nonce": nonce,
        "chainId": chain_id,
        "data": bytes.fromhex(digest.removeprefix("sha256:")),
    }

    signed = acct.sign_transaction(tx)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    logger.info("Sent anchor tx %s, waiting for confirmation", tx_hash.hex())

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=300)
    logger.info("Anchor confirmed in block %d", receipt.blockNumber)
    return tx_hash.hex(), receipt.blockNumber


def anchor_events(
    event_log: EventLog,
    rpc_url: str,
    private_key: str,
    chain_id: int = SEPOLIA_CHAIN_ID,
) -> AnchorRecord:
    """Compute the event-log root and anchor it."""
    root = event_log_root(event_log)
    tx_hash, block_number = anchor_to_chain(root, rpc_url, private_key, chain_id)
    return AnchorRecord(
        merkle_root=root,
        event_count=event_log.count,
        tx_hash=tx_hash,
        block_number=block_number,
        chain_id=chain_id,
        timestamp_utc=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        explorer_url=f"https://sepolia.etherscan.io/tx/{tx_hash}",
    )
