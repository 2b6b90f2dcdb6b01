"""
SmileQuest Test Suite
=====================

Test Organization
-----------------
- tests/unit/          : Services against a scratch SQLite database, pure helpers, HTTP layer
- tests/integration/   : PostgreSQL via testcontainers (skipped without Docker)

Testing Philosophy
------------------
- Services run their real SQL; only collaborators that must fail are mocked
- Time comes from an injected clock, never the wall clock
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
