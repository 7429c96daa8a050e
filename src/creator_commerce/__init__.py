"""
Creator Commerce - multi-tenant backend for creator businesses
"""
__version__ = "0.1.0"
