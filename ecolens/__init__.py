"""
EcoLens - waste classification and Green Coin rewards service
"""
__version__ = "1.0.0"
