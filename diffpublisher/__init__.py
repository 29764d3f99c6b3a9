"""Augmented diff publisher.

Consumes an ordered, markered stream of augmented diff events, groups the
events into per-sequence batches and publishes each batch (plus a resumable
``state.yaml``) to the local filesystem or S3.
"""

__version__ = "1.0.0"
