"""Feature engineering: CSV parsing, encoding, balancing, splitting."""

from .dataset import BatchGenerator, Dataset, Sample, to_arrays
from .pipeline import FeatureFileError, FeaturePipeline, ParsedRow, ParseStatus, parse_row

__all__ = [
    "Sample", "Dataset", "BatchGenerator", "to_arrays",
    "FeaturePipeline", "FeatureFileError", "ParsedRow", "ParseStatus", "parse_row",
]
