"""
                        Services Module

Business logic of the order lifecycle.

Services:
    - pricing: line totals, VAT and grand totals
    - cart: CartAggregator for the order in progress
    - status_machine: legal order status transitions
    - backends: remote / mock / local order backends and the fallback decorator
    - orders: OrderStore, the entry point for submit / list / update
    - sync: ViewSyncChannel and OrderFeed for multi-view consistency
"""
