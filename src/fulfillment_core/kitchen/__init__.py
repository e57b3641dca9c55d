"""Kitchen workers."""

from fulfillment_core.kitchen.worker import GENERAL_WORKER_TYPE, KitchenWorker, worker_type_label

__all__ = ["GENERAL_WORKER_TYPE", "KitchenWorker", "worker_type_label"]
