"""Services package."""

from onboardhub.services.activity import ActivityLogger
from onboardhub.services.comments import CommentService
from onboardhub.services.email import Mailer
from onboardhub.services.files import FileService
from onboardhub.services.instantiation import TemplateInstantiationEngine
from onboardhub.services.portal import PortalService, PortalViewBuilder
from onboardhub.services.projects import ProjectService
from onboardhub.services.reminders import ReminderService
from onboardhub.services.signatures import DocumentService, SignatureService
from onboardhub.services.stages import StageService
from onboardhub.services.storage import BlobStore
from onboardhub.services.tags import TagService
from onboardhub.services.tasks import TaskService
from onboardhub.services.templates import TemplateService

__all__ = [
    "ActivityLogger",
    "BlobStore",
    "CommentService",
    "DocumentService",
    "FileService",
    "Mailer",
    "PortalService",
    "PortalViewBuilder",
    "ProjectService",
    "ReminderService",
    "SignatureService",
    "StageService",
    "TagService",
    "TaskService",
    "TemplateInstantiationEngine",
    "TemplateService",
]
