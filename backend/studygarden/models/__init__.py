"""Database models."""

# Import all models here so metadata.create_all / migrations see them
from studygarden.models.mastery import Subject, TopicMastery

__all__ = [
    "Subject",
    "TopicMastery",
]
