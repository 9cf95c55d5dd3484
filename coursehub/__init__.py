"""CourseHub API: online learning marketplace."""

__version__ = "0.1.0"
