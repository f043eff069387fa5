"""PagePilot -- safe, auditable execution of model-planned actions on annotated web pages."""

__version__ = "0.3.0"
