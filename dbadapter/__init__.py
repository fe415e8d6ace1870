"""
dbadapter - async SQL Server query adapter with pooled and direct backends.
"""

__version__ = "1.0.0"
