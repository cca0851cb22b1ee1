"""MAS Advisor Engine: message routing and context assembly for the nonprofit advisor chat."""

__version__ = "0.1.0"
