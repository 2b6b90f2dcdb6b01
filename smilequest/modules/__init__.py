"""Engagement domain modules: treatment directory, ledger, wear tracking, missions, quests."""
