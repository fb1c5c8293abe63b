"""HTTP API for the timesheet tracker."""
