"""
Helpdesk Dashboard - Freshservice ticket analytics
"""
__version__ = "1.0.0"
