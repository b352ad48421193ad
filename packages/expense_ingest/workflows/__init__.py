"""Workflow orchestrators composing ingest, mapping, row building and commit."""
