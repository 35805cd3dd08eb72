"""
Chankura exchange connector.

REST polling adapter that turns the venue's Peatio-style API into canonical
order-book, trade, order-status, position and connectivity streams.
"""

__version__ = "0.1.0"
