"""
Footsquad match coordination core.

Owns the match lifecycle between two independently captained teams:
roster assembly, opponent acceptance, two-party score agreement,
post-match peer ratings and the Man-of-the-Match vote.
"""

__version__ = "1.0.0"
