"""
Community content contest service.

Article submissions, moderation, community voting and time-boxed contest
periods that resolve to a single winning submission.
"""

__version__ = "0.1.0"
