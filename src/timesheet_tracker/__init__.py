"""Internal timesheet tracker with a manager approval workflow."""

__version__ = "0.1.0"
