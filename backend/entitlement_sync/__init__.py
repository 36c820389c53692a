"""
Entitlement sync: resolve billing events into user entitlements and keep the
feature gateways in step.
"""

__version__ = "0.1.0"
