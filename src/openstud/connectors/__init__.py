# src/openstud/connectors/__init__.py
