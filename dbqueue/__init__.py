"""
Database-backed Message Queue

At-least-once message delivery on top of a relational table, emulating the
visibility-timeout semantics of a managed queue service: messages stay
invisible until a server-computed deadline, then a single consumer polls
them out in deadline order while advancing a cursor.
"""

__version__ = "1.0.0"
