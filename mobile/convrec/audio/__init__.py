"""Capture, segmentation and conversation gating."""
