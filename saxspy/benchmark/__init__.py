"""Benchmarks for the intensity backends."""
