"""Configuration package for the Cryptopilot service."""

from .settings import AppSettings, get_settings

__all__ = ["AppSettings", "get_settings"]
