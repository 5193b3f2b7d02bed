"""Category survey backend: questionnaire scoring, response storage and reporting."""

__version__ = "1.0.0"
