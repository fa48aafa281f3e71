"""Word frequency ranks package."""

from packages.frequency.table import FrequencyService, FrequencyTable

__all__ = [
    "FrequencyService",
    "FrequencyTable",
]
