"""
Lore Chronicles - rule engine for branching multiplayer narrative campaigns.
"""

__version__ = "0.1.0"
