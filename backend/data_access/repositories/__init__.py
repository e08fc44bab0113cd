"""
Repository pattern implementations for data access.

This module provides a clean abstraction over database operations
with proper connection management and error handling.
"""

from .base import BaseRepository, translate_store_error
from .game_repository import GameRepository
from .identity_repository import IdentityRepository

__all__ = ['BaseRepository', 'GameRepository', 'IdentityRepository', 'translate_store_error']
