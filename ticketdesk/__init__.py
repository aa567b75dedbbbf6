"""
Ticketdesk - support tickets inside Discord servers
"""
__version__ = "1.0.0"
