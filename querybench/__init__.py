"""
querybench

Run SQL against Snowflake through interchangeable client backends and compare
their latency with a repeatable benchmark harness.
"""

VERSION = "0.3.0"
__version__ = VERSION
