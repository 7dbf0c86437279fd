"""
Magicodex services.

Catalog synchronization against Scryfall and card search.
"""
