"""Core wagering components: balance cache, engine, ledger rules and storage."""
