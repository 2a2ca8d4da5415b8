"""BinKeeper CLI command implementations."""
