"""Metric data models"""
from dataclasses import dataclass
from enum import Enum


class Component(str, Enum):
    """Component labels of the summaries bundled with the application list"""
    APPLICATION_SUMMARY = "application_summary"
    END_USER_SUMMARY = "end_user_summary"


@dataclass(frozen=True)
class Sample:
    """Single published value of one application.

    ``component`` is either a summary component or the metric family the
    value belongs to.
    """
    app: str
    name: str
    value: float
    component: str

    def label_values(self):
        return self.app, self.component
