"""
Search, fetch and embedding adapters
"""
