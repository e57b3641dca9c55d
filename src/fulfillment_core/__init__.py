"""
Fulfillment Core - order intake, kitchen workers, tracking and notifications.

Services communicate ONLY via:
- the relational store (orders, items, status log, worker registry)
- the work exchange (orders_topic) and notification exchange (notifications_fanout)

There is no other shared state between the intake API, workers and relays.
"""
