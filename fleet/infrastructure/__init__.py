"""Quota tracking, concurrency gate, profile locks and session registry."""
