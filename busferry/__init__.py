"""D-Bus addresses, client authentication, introspection trees, pending replies and message capture analysis."""

__version__ = "0.1.0"

__all__ = [
    "authclient",
    "connectaddress",
    "eavesdroppermodel",
    "introspection",
    "messagesortfilter",
    "pendingreply",
]