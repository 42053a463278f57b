"""HTTP API for feed reads and diagnostics."""
