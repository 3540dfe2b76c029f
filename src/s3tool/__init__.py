"""
s3tool: a command-line client for S3-compatible object stores.

Uploads stream through a content-type sniffer and a bounded relay into a
parallel multipart upload; recursive delete and ACL changes select keys by
path prefix and apply one action per key, stopping at the first failure.
"""

__version__ = "0.1.0"
