"""
slotengine - appointment availability and validation engine.
"""

__version__ = "0.1.0"
