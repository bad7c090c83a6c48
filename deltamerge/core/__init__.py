"""
Core delta engine: data models, errors and line bookkeeping.
"""
