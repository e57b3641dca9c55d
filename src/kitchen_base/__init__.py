"""
Kitchen Base - shared infrastructure for the fulfillment services.

Provides settings, logging setup, the SQLAlchemy engine/session plumbing and
RabbitMQ connection helpers. Contains no order-domain logic.
"""
