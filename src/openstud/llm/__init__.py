# src/openstud/llm/__init__.py
