"""
Client module: the remote acknowledgement endpoint and its implementations.
"""

from receiptflow.client.protocols import AcknowledgementEndpoint
from receiptflow.client.http import MessagesClient
from receiptflow.client.memory import InMemoryAcknowledgementEndpoint, AckCall

__all__ = [
    "AcknowledgementEndpoint",
    "MessagesClient",
    "InMemoryAcknowledgementEndpoint",
    "AckCall",
]
