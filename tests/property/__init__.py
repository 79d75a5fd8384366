"""
Marginalia - Property-Based Testing Suite

Hypothesis tests for the invariants of reference parsing, annotation
layers, collection import and search.
"""
