"""
Distribution Kernel

Custody tracking for documents handed off between departments:
- Distribution lifecycle state machine
- Independent sender/receiver verification ledger
- Discrepancy detection between what was sent and what was received
- Immutable transmittal advice snapshots
- Tamper-evident, append-only history
"""

__version__ = "0.1.0"
