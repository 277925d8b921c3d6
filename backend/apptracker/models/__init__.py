from apptracker.models.application import Application
from apptracker.models.contact import Contact
from apptracker.models.activity import Activity
from apptracker.models.tag import Tag, application_tags

__all__ = ["Application", "Contact", "Activity", "Tag", "application_tags"]
