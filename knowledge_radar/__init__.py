"""Knowledge Radar - reference freshness and note staleness engine."""

__version__ = "0.1.0"
