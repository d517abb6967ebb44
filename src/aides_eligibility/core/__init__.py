"""
Core data and decision layer.

This package contains:
- data_loader: fetch the eligibility rule rows (Supabase REST or local export)
- normalizer: parse raw rows into questions, aides, rules and conclusions
- graph: link questions to successor nodes
- engine: dataset loading and the interview state machine
- audit: canonical facts about a finished or ongoing interview
- errors: exception hierarchy
"""
