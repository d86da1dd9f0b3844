"""
File gateway.

Accepts uploads, stores blobs in S3 or on the local filesystem, keeps their
metadata in an index and serves downloads by id.
"""
