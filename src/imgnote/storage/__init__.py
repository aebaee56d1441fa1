"""Storage layer for imgnote: repositories, the note store, the version ledger and search."""
