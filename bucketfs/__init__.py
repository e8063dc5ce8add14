"""bucketfs: hierarchical file storage on top of S3 buckets."""

__version__ = "0.1.0"
