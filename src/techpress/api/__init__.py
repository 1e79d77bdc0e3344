"""HTTP API for techpress."""
