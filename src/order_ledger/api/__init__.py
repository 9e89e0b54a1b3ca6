"""HTTP surface of the ledger: append, audit query, validation and peer exchange."""
