"""SQLAlchemy models."""

from onboardhub.models.activity import ActivityLog, ActorType
from onboardhub.models.document import Document, OnboardingFile, Signature
from onboardhub.models.project import Comment, Project, ProjectTag, Stage, Tag, Task
from onboardhub.models.template import Template, TemplateTask

__all__ = [
    "ActivityLog",
    "ActorType",
    "Comment",
    "Document",
    "OnboardingFile",
    "Project",
    "ProjectTag",
    "Signature",
    "Stage",
    "Tag",
    "Task",
    "Template",
    "TemplateTask",
]
