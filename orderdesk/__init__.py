"""
                        OrderDesk

Order and cart lifecycle service for restaurant ordering: cart pricing,
order submission, operational status tracking and multi-view sync over a
remote order service with a local fallback store.
"""

__version__ = "1.0.0"
