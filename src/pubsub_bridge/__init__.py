"""
Pub/Sub Bridge

Forwards typed business events to a message broker and dispatches the
broker's CloudEvents deliveries to in-process handlers, answering each with a
SUCCESS / RETRY / DROP disposition the delivery agent acts on.
"""
__version__ = "0.1.0"
