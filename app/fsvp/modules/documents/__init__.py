"""
Compliance documents and digital signatures bound to a product version.
"""
