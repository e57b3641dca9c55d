"""Notification relay service entry point."""
