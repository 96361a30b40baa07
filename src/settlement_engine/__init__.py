"""Settlement engine for the playlist submission marketplace.

Captures submission payments through an external payment provider, credits
curator balances, and pays those balances out on request.
"""

__version__ = "0.1.0"
