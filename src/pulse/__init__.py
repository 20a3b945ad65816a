"""
Pulse: personalized event feed, suggestions and nearby discovery for Denver.
"""

__version__ = "1.0.0"
