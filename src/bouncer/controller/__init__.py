"""Event-driven orchestration of guards across browser tabs and frames."""

from bouncer.controller.active_tabs import ActiveTabs
from bouncer.controller.activity import BrowseActivity
from bouncer.controller.controller import Controller
from bouncer.controller.postings import GuardPostings
from bouncer.controller.registry import GuardRegistry

__all__ = ["ActiveTabs", "BrowseActivity", "Controller", "GuardPostings", "GuardRegistry"]
