from docportal.models.user import ROLE_ADMIN, ROLE_USER, User
from docportal.models.docs import Chapter, Document, Module, Version

__all__ = ["User", "Version", "Module", "Chapter", "Document", "ROLE_ADMIN", "ROLE_USER"]
