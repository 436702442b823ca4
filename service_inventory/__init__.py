"""
Resource Inventory gateway service.
"""
