"""
Storage module tests for w3store.

Tests cover:
- Content identifiers, dag-pb nodes and CAR archives
- Directory tree updates and block stores
- Archive packers and remote archive services
- Publish sessions, the registry and the Publisher pipeline
- The w3s driver and gateway reads
"""
