"""Python client for the Code Survival API."""

from .client import SurvivalClient, RunTimeout

__all__ = ["SurvivalClient", "RunTimeout"]
