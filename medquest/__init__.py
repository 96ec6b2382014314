"""MedQuest progression service: achievements, experience, levels and badges."""

__version__ = "0.1.0"
