"""
Rocky Migrator - in-place migration of Linux hosts to Rocky Linux
"""

__version__ = "0.1.0"
