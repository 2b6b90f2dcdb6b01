"""SmileQuest: wear tracking and progress engine for pediatric aligner treatment."""

__version__ = "1.0.0"
