"""Chain collaborators: the web3 client and the in-memory ledger."""

from theta_connector.chain.encoding import encode_key
from theta_connector.chain.factory import create_chain_client
from theta_connector.chain.memory_ledger import MemoryLedger
from theta_connector.chain.web3_client import Web3ChainClient

__all__ = ["MemoryLedger", "Web3ChainClient", "create_chain_client", "encode_key"]
