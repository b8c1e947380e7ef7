"""
Loyalty Wallet Chain

Keeps Apple Wallet, Google Wallet and web passes for the same loyalty or
membership card in sync: one canonical card model, a bounded generation queue
and a verification battery that checks the three artifacts agree.
"""

__version__ = "1.0.0"
