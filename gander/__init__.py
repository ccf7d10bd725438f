"""Gander - an interactive agent loop for shell, file and process tools."""

__version__ = "0.1.0"

from gander.config import Config
from gander.message import Message
from gander.session import Session
from gander.main import main

__all__ = ["Config", "Message", "Session", "main", "__version__"]
