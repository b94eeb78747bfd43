"""
Catalog domain package.

Defines the product and image models and the repository contract that
both the stores and the caching decorator implement.
"""
