"""Pure domain types for the kernel (no I/O)."""
