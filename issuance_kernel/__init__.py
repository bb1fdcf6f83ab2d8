"""
Issuance Kernel

Domain records, typed errors and infrastructure shared by the issued-items
reconciliation library:
- Server records parsed from lower-cased REST payloads
- Injectable clock
- Structured JSON logging
- Append-only audit persistence
"""

__version__ = "0.1.0"
