"""Numerical kernels and geometry helpers."""
