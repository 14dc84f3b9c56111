"""blockgate models package.

Defines the shared data contracts used by the client and the account status service:

  - state.py   - UserSummary, BlockInfo, BlockState, PollResult
  - blocked.py - HTTP 403 blocked-account response builder + client-side detector

These models are the single source of truth for the blocked-account wire contract.
"""
