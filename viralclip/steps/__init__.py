"""Pipeline stages: resolve, metadata, download, window, transcode."""
