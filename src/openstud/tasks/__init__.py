# src/openstud/tasks/__init__.py
