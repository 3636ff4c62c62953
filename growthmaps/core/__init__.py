"""Numerics: rate models, layers, periods and the aggregation engine."""
