"""Shared utilities: logging, retry, batching and text helpers."""
