"""Reflection-driven re-ranking of baseline plans."""

from .adjuster import ReflectionRankingAdjuster, adjust
from .recency import recency_weight
from .similarity import SimilarityFn, cosine_similarity

__all__ = ["ReflectionRankingAdjuster", "SimilarityFn", "adjust", "cosine_similarity", "recency_weight"]
