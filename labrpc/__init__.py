"""Small RPC services over TCP: calculator, word dictionary, bakery queue and producer/consumer buffer."""

__version__ = "0.1.0"

__all__ = ["xdr", "rpc", "calculator", "dictionary", "bakery", "prodcons"]