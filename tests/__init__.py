"""overpass-diff-publisher test suite.

Test organization:
- unit/test_events.py, test_batcher.py: event model, annotator and batcher
- unit/test_publisher.py, test_state.py, test_position.py: publish protocol and resume
- unit/test_storage_backends.py, test_storage_s3.py: local and S3 targets (moto)
- unit/test_feed.py: newline-delimited and HTTP feeds
- unit/test_runner.py, test_cli.py, test_settings.py: wiring and configuration
"""
