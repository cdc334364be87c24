"""Resilient aggregation core for Finnish situational-awareness map layers."""

__version__ = "0.1.0"
