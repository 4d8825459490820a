"""
Vigil — Liveness Challenge Package
==================================
Gesture-challenge evidence engine.
"""
from .challenge_engine import ChallengeEngine

__all__ = ["ChallengeEngine"]
