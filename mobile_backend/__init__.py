"""
Mobile subscription backend: RevenueCat entitlement webhook and account
edge functions on Supabase.
"""

__version__ = "1.0.0"
