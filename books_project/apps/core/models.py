"""
Core models and mixins used across all apps.
"""
from django.db import models


class TimeStampedModel(models.Model):
    """
    Abstract base model with created_at and updated_at fields.
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ActiveModel(models.Model):
    """
    Abstract base model with is_active field.
    Deactivation is soft: rows are kept so history stays intact.
    """
    is_active = models.BooleanField(default=True)

    class Meta:
        abstract = True


class BaseModel(TimeStampedModel, ActiveModel):
    """
    Base model combining the common fields.

    Fields:
    - created_at
    - updated_at
    - is_active
    """

    class Meta:
        abstract = True
