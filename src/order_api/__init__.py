"""HTTP API for order intake and tracking."""
