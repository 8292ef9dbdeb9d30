"""
Universal Kernel - entity modeling over a fixed universal schema.

Every business object (client, product, GL account, derived intelligence
record) is stored in the same five tables:
- core_entities: identity rows, one per business object
- core_dynamic_data: open-ended typed key/value attributes
- core_metadata: versioned, soft-deactivated side-channel data
- core_relationships: typed, directed edges between entities
- universal_transactions: business events, including write audit rows
"""

__version__ = "0.1.0"
