# -*- coding: utf-8 -*-
"""
Central configuration for the store management service.
"""

# Pagination settings
PAGINATION_SETTINGS = {
    'ORDERS_PER_PAGE': 15,         # Rows per page for the order list
    'CUSTOMERS_PER_PAGE': 15,      # Rows per page for the customer list
    'DELIVERIES_PER_PAGE': 15,     # Rows per page for the delivery list
    'STATISTICS_PER_PAGE': 15,     # Rows per page for customer statistics
    'STORES_PER_PAGE': 50,         # Rows per page for the store list
    'MAX_PER_PAGE': 200,           # Upper bound for a client supplied per_page
}

# Store selection cookies
STORE_COOKIE_SETTINGS = {
    'ID_COOKIE': 'selectedStoreId',
    'NAME_COOKIE': 'selectedStoreName',
    'MAX_AGE': 60 * 60 * 24 * 30,  # 30 days
}

# Order status values
ORDER_STATUS_COMPLETED = '完了'
ORDER_STATUS_PENDING = '未完了'
ORDER_STATUSES = (ORDER_STATUS_COMPLETED, ORDER_STATUS_PENDING)
