"""Conversation recorder client: segmented capture, gating and upload."""
