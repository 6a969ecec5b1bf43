"""
Core networking components: the listener, the per-client connection
session and the worker pool that runs those sessions.

    SocketServer   binds, accepts, dispatches (or rejects with 500)
    Connection     parse → handle → respond loop for one client
    ThreadPool     bounded workers + bounded queue, non-blocking submit
"""

from .thread_pool import ThreadPool, Task, Worker, WorkerState
from .connection import Connection, ConnectionState
from .socket_server import SocketServer, abort_socket

__all__ = [
    "ThreadPool",
    "Task",
    "Worker",
    "WorkerState",
    "Connection",
    "ConnectionState",
    "SocketServer",
    "abort_socket",
]
