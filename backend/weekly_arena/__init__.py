"""Weekly Arena: analytics and ranking engine for the weekly allocation contest."""

__version__ = "0.1.0"
__author__ = "Weekly Arena Team"

__all__ = ["__version__", "__author__"]
