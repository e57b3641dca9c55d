"""Kitchen worker service entry point."""
