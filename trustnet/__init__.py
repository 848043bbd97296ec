"""
Trust Network

Trust ledger, vouching graph, trust propagation and referral payouts for a
professional referral network.
"""

__version__ = "0.1.0"
