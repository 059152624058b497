"""
Consumer driver for polling the queue.
"""

from dbqueue.consumer.main import BatchHandler, Consumer, run_until_stopped

__all__ = ["BatchHandler", "Consumer", "run_until_stopped"]
