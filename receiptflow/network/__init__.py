"""
Network module: connectivity latch and connectivity observer.
"""

from receiptflow.network.gate import NetworkGate
from receiptflow.network.monitor import NetworkMonitor

__all__ = [
    "NetworkGate",
    "NetworkMonitor",
]
