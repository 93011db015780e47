"""
Newsletter Issues

Issue content, persistence and the confirmed-subscriber source.
"""

from .models import IssueContent, NewsletterIssue, SubscriberEmail
from .repository import IssueRepository
from .subscribers import SubscriberDirectory

__all__ = [
    "IssueContent",
    "IssueRepository",
    "NewsletterIssue",
    "SubscriberDirectory",
    "SubscriberEmail",
]
