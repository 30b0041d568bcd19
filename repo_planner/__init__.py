"""repo-planner: comment-triggered repository planning bot."""

__version__ = "0.1.0"
