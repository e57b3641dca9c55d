"""Broker topology, publishers and the queue consumer."""
