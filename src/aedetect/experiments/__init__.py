"""Experiment harnesses."""
