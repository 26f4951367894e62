"""CLI tools for botforge.

- ``python -m src.cli.train``: create bots, ingest files and websites,
  inspect or purge training data, and ask questions from a terminal.
"""
