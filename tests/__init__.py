# vcfseal Test Suite
"""
Test suite including:
- Unit tests (header, record, codec, crypto provider, event log)
- Transform tests (encryption and decryption passes)
- Integration tests (files, type maps, audit trail)
- Security tests (unsafe providers, tampering, wrong keys)

Run with: pytest
"""
