"""
Polymarket mempool copy trader.
"""
