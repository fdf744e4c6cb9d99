"""Pure domain rules (no I/O): quota policy and profile validation."""
