"""
Product SKU lifecycle: draft -> pending -> approved | rejected.
"""
