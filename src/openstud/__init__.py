# src/openstud/__init__.py

"""OpenStud: student task planner with buffered task edits and an AI tutor."""

__version__ = "0.1.0"
