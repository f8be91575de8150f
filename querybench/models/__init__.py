"""
Data models for querybench.

This package contains:
- Connection profiles and the profile file loader
- Benchmark samples and aggregated results
"""

from querybench.models.profile import (
    Profile,
    ProfileSet,
)

from querybench.models.results import (
    BenchmarkResult,
    IterationSample,
)

__all__ = [
    # profile
    "Profile",
    "ProfileSet",
    # results
    "BenchmarkResult",
    "IterationSample",
]
