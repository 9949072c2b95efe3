"""Conversation processor API."""
