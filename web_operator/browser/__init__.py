from .base import BrowserCapability, BrowserFactory

__all__ = ["BrowserCapability", "BrowserFactory"]
