# src/openstud/tutor/__init__.py
