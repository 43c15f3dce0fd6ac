"""
Vendor profiles (one per vendor user).
"""
