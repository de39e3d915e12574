"""SGEMM kernel harness.

This package compiles interchangeable CUDA SGEMM kernel variants, verifies
each one against a host reference, benchmarks their throughput over a sweep
of square problem sizes, and reports the comparison.
"""

from __future__ import annotations
