"""
Producer driver for batching payloads into the queue.
"""

from dbqueue.producer.main import Producer, RecordsCallback

__all__ = ["Producer", "RecordsCallback"]
