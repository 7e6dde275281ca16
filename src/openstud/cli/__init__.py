# src/openstud/cli/__init__.py
