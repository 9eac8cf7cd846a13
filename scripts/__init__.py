"""
Scripts for CareCadence
Utility scripts for exercising the engine outside the API
"""

from .simulate_day import simulate, seed_medicines

__all__ = [
    "simulate",
    "seed_medicines",
]
