"""
fairrank - Core Package

This package contains the core modules for:
- Judge-bias normalization, aggregation, ranking and selection (fairrank.scoring)
- Input loading (fairrank.ingestion)
- Shared configuration and utilities
"""

from fairrank.config import *
