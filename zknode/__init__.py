"""Field scalars, contract state trees, Poseidon hashing, peer, firewall and mempool bookkeeping for a chain node."""

__version__ = "0.1.0"