"""
crowdplay: upvote counters and a shared playback session for a music discovery client.
"""

__version__ = "0.1.0"
