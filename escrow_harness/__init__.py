"""
Verification harness for on-chain escrow/swap programs
"""

__version__ = "0.1.0"
