"""HTTP API for the Uniclass Match Gateway."""
