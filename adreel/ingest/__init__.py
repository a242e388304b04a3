"""Candidate discovery: feed adapters and candidate normalisation."""

from .candidates import Candidate, infer_platform, parse_duration_text, select_candidates
from .feeds import FeedAdapter, FeedParseError, parse_source, select_adapter

__all__ = [
    "Candidate",
    "FeedAdapter",
    "FeedParseError",
    "infer_platform",
    "parse_duration_text",
    "parse_source",
    "select_adapter",
    "select_candidates",
]
