"""API Routes Module"""
from .throttle_routes import get_login_throttle_router

__all__ = ['get_login_throttle_router']
