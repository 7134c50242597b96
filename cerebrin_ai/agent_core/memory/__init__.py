"""Append-only workspace lessons used as extra context."""

from .resonance import ResonanceMemory, cosine_similarity

__all__ = ["ResonanceMemory", "cosine_similarity"]
