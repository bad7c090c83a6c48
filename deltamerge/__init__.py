"""
deltamerge - diff/merge delta engine for editor integrations.
"""

__version__ = "1.0.0"
