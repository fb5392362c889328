"""ledgerstack — local multi-node ledger development stacks."""

__version__ = "0.1.0"
