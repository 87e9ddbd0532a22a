"""Utility helpers for roadgrade."""
