# src/openstud/core/__init__.py
